"""Brand Extraction Agent: fetch, extract heuristically and visually, then fuse."""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

import requests

from backend.app.config import PipelineSettings
from backend.app.errors import FetchError
from backend.app.logger import logger
from backend.app.models import (
    BrandProfile,
    CapturedDocument,
    ConfidenceScores,
    ExtractionResult,
    ProviderAttemptRecord,
)
from backend.agents.color_theory import DEFAULT_TRIAD
from backend.agents.fetcher import build_fetcher
from backend.agents.fusion import fuse_profiles
from backend.agents.heuristics import HeuristicExtractor
from backend.agents.provider_chain import ExtractionContext
from backend.agents.screenshot import (
    ScreenshotAcquirer,
    ScreenshotProvider,
    ScreenshotValidator,
    build_screenshot_providers,
)
from backend.agents.vision import VisionInferenceChain, VisionProvider, build_vision_providers

VisualResult = Tuple[Optional[BrandProfile], List[ProviderAttemptRecord], Optional[str], Optional[str]]


def normalize_url(url: str) -> str:
    url = (url or '').strip()
    if url and not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    return url


def fallback_profile() -> BrandProfile:
    """The fixed low-confidence profile used when nothing else can be derived."""
    confidence = ConfidenceScores(name=0.1, colors=0.1, typography=0.1, logo=0.1, personality=0.1, overall=0.1)
    return BrandProfile(
        primary_color=DEFAULT_TRIAD.primary,
        secondary_color=DEFAULT_TRIAD.secondary,
        accent_color=DEFAULT_TRIAD.accent,
        confidence=confidence,
    )


class BrandExtractionAgent:
    """Extracts a brand profile from a website URL.

    The fetched document feeds two independent branches that run side by
    side: heuristic extraction (no network) and screenshot -> vision
    inference. Both must finish before fusion. Only a failed fetch (or a
    deadline that fires before the fetch completes) raises; every later
    failure degrades the result instead.
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        fetcher=None,
        heuristic_extractor: Optional[HeuristicExtractor] = None,
        screenshot_providers: Optional[List[ScreenshotProvider]] = None,
        vision_providers: Optional[List[VisionProvider]] = None,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        self.settings = settings or PipelineSettings.from_env()
        self.session = session or requests.Session()
        self.fetcher = fetcher or build_fetcher(self.settings, session=session)
        self.heuristic_extractor = heuristic_extractor or HeuristicExtractor()
        # None means "build from settings for each request", so the fetch's screenshot hint can lead
        self.screenshot_providers = screenshot_providers
        self.validator = ScreenshotValidator(self.session, threshold=self.settings.validation_threshold)
        self.sleep = sleep

        if vision_providers is None:
            vision_providers = build_vision_providers(self.settings)
        self.vision_chain = VisionInferenceChain(
            vision_providers,
            self.settings.vision_retry,
            timeout=self.settings.vision_timeout,
            sleep=sleep,
        )

    def extract(self, url: str, context: Optional[ExtractionContext] = None) -> BrandProfile:
        return self.extract_with_trail(url, context).profile

    def extract_with_trail(self, url: str, context: Optional[ExtractionContext] = None) -> ExtractionResult:
        """Run the whole pipeline and keep the provider attempt trail."""
        context = context or ExtractionContext()
        url = normalize_url(url)
        if not url:
            raise FetchError(url, "empty URL")

        logger.info("=" * 60)
        logger.info(f"🔍 EXTRACTING BRAND PROFILE: {url}")
        logger.info("=" * 60)

        timeout = context.cap_timeout(self.settings.fetch_timeout)
        document = self.fetcher.fetch(url, timeout=timeout)

        with ThreadPoolExecutor(max_workers=2) as pool:
            heuristic_future = pool.submit(self._heuristic_branch, document)
            visual_future = pool.submit(self._visual_branch, document, context)
            heuristic = heuristic_future.result()
            vision, attempts, screenshot_provider, vision_provider = visual_future.result()

        profile = fuse_profiles(heuristic, vision, self.settings.fusion_weights)

        logger.info("=" * 60)
        logger.info("📊 FINAL BRAND PROFILE")
        logger.info(f"Name: {profile.name}")
        logger.info(f"Colors: {profile.primary_color} / {profile.secondary_color} / {profile.accent_color}")
        logger.info(f"Font: {profile.font_family}, logo: {profile.logo_url or 'none'}")
        logger.info(f"Personality: {profile.personality.primary_trait}, {profile.personality.industry_context}")
        logger.info(f"Overall confidence: {profile.confidence.overall} (vision: {vision_provider or 'none'})")
        logger.info("=" * 60)

        return ExtractionResult(
            profile=profile,
            attempts=attempts,
            screenshot_provider=screenshot_provider,
            vision_provider=vision_provider,
        )

    def _heuristic_branch(self, document: CapturedDocument) -> BrandProfile:
        try:
            return self.heuristic_extractor.extract(document)
        except Exception as e:
            logger.error(f"❌ Heuristic extraction failed, using fallback profile: {e}", exc_info=True)
            return fallback_profile()

    def _visual_branch(self, document: CapturedDocument, context: ExtractionContext) -> VisualResult:
        providers = self.screenshot_providers
        if providers is None:
            providers = build_screenshot_providers(self.settings, self.session, prefetched=document.screenshot_hint)
        acquirer = ScreenshotAcquirer(
            providers,
            self.validator,
            self.settings.screenshot,
            self.settings.screenshot_retry,
            sleep=self.sleep,
        )

        attempts: List[ProviderAttemptRecord] = []
        try:
            shot = acquirer.acquire(document.url, context)
            attempts.extend(shot.attempts)
            if not shot.succeeded:
                return None, attempts, None, None

            if not self.vision_chain.providers:
                logger.info("Screenshot acquired but no vision model configured, skipping vision")
                return None, attempts, shot.provider, None

            seen = self.vision_chain.infer(shot.result, document.url, context)
            attempts.extend(seen.attempts)
            return seen.result, attempts, shot.provider, seen.provider
        except Exception as e:
            logger.error(f"❌ Visual extraction failed, continuing without it: {e}", exc_info=True)
            return None, attempts, None, None


def extract_brand_profile(
    url: str,
    context: Optional[ExtractionContext] = None,
    agent: Optional[BrandExtractionAgent] = None,
) -> BrandProfile:
    """Convenience entry point: one URL in, one brand profile out."""
    agent = agent or BrandExtractionAgent()
    return agent.extract(url, context)
