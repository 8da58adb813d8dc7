"""Screenshot acquisition: rendering providers, validation and the fallback chain."""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple, Union
from urllib.parse import urlencode

import requests
from playwright.sync_api import sync_playwright

from backend.app.config import PipelineSettings, RetryPolicy
from backend.app.errors import ProfileValidationError, ProviderError
from backend.app.logger import logger
from backend.app.models import (
    ScreenshotArtifact,
    ScreenshotConfig,
    ScreenshotValidation,
)
from backend.agents.provider_chain import ChainOutcome, ExtractionContext, ProviderChain

Reference = Union[str, bytes]

MIN_IMAGE_BYTES = 10 * 1024
MAX_IMAGE_BYTES = 5 * 1024 * 1024
SCORE_REACHABLE = 40
SCORE_IMAGE_TYPE = 30
SCORE_SIZE_OK = 30
PENALTY_TOO_SMALL = 30
PENALTY_TOO_LARGE = 10


# ============================================================================
# PROVIDERS
# ============================================================================

class ScreenshotProvider(ABC):
    """One rendering service. ``render`` returns an image URL or raw bytes, or raises."""

    name = "screenshot"

    def __init__(self, max_retries: int = 2):
        self.max_retries = max_retries

    @abstractmethod
    def render(self, url: str, config: ScreenshotConfig, timeout: float) -> Reference:
        ...


class PrefetchedScreenshotProvider(ScreenshotProvider):
    """A screenshot the scraping backend already produced alongside the markup."""

    name = "prefetched"

    def __init__(self, reference: str):
        super().__init__(max_retries=1)
        self.reference = reference

    def render(self, url, config, timeout):
        return self.reference


class ScreenshotOneProvider(ScreenshotProvider):
    """ScreenshotOne-style URL API: the image is rendered when the URL is requested."""

    name = "screenshotone"
    ENDPOINT = "https://api.screenshotone.com/take"
    WAIT_UNTIL = {"load": "load", "domcontentloaded": "domcontentloaded", "networkidle": "networkidle0"}

    def __init__(self, access_key: str, max_retries: int = 2):
        super().__init__(max_retries)
        self.access_key = access_key

    def render(self, url, config, timeout):
        params = {
            "access_key": self.access_key,
            "url": url,
            "viewport_width": config.width,
            "viewport_height": config.height,
            "format": "jpg" if config.format == "jpeg" else config.format,
            "image_quality": config.quality,
            "full_page": str(config.full_page).lower(),
            "block_ads": str(config.block_ads).lower(),
            "block_cookie_banners": str(config.block_cookie_banners).lower(),
            "wait_until": self.WAIT_UNTIL[config.wait_condition],
            "timeout": int(min(timeout, config.timeout)),
        }
        return f"{self.ENDPOINT}?{urlencode(params)}"


class ScreenshotGuruProvider(ScreenshotProvider):
    """Keyless screenshot.guru URL API."""

    name = "screenshot.guru"
    ENDPOINT = "https://screenshot.guru/api/screenshot"

    def render(self, url, config, timeout):
        params = {
            "url": url,
            "width": config.width,
            "height": config.height,
            "type": config.format,
            "quality": config.quality,
        }
        return f"{self.ENDPOINT}?{urlencode(params)}"


class HtmlCssToImageProvider(ScreenshotProvider):
    """htmlcsstoimage.com: POST a render job, get back a hosted image URL."""

    name = "htmlcsstoimage"
    ENDPOINT = "https://hcti.io/v1/image"

    def __init__(self, user_id: str, api_key: str, session: Optional[requests.Session] = None, max_retries: int = 2):
        super().__init__(max_retries)
        self.user_id = user_id
        self.api_key = api_key
        self.session = session or requests.Session()

    def render(self, url, config, timeout):
        body = {
            "url": url,
            "viewport_width": config.width,
            "viewport_height": config.height,
            "device_scale": 1,
            "full_screen": config.full_page,
            "block_consent_banners": config.block_cookie_banners,
            "ms_delay": 1500 if config.wait_condition == "networkidle" else 500,
        }
        response = self.session.post(self.ENDPOINT, json=body, auth=(self.user_id, self.api_key), timeout=timeout)
        if response.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {response.status_code}: {response.text[:200]}")
        try:
            image_url = response.json().get("url")
        except ValueError:
            raise ProviderError(self.name, "response was not JSON")
        if not image_url:
            raise ProviderError(self.name, "response carried no image URL")
        return image_url


class PlaywrightScreenshotProvider(ScreenshotProvider):
    """Local headless Chromium. Returns the image bytes."""

    name = "playwright"
    AD_HOST_MARKERS = ("doubleclick.net", "googlesyndication.com", "adservice.google", "adnxs.com", "taboola.com")
    COOKIE_BANNER_CSS = (
        "#onetrust-banner-sdk, #onetrust-consent-sdk, #CybotCookiebotDialog, .cc-window, "
        ".cookie-banner, .cookie-consent, [id*='cookie-banner'], [class*='cookie-notice'] "
        "{ display: none !important; }"
    )

    def render(self, url, config, timeout):
        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(headless=True)
            try:
                page = browser.new_page(viewport={"width": config.width, "height": config.height})
                if config.block_ads:
                    page.route(
                        "**/*",
                        lambda route: route.abort()
                        if any(marker in route.request.url for marker in self.AD_HOST_MARKERS)
                        else route.continue_(),
                    )
                page.goto(url, wait_until=config.wait_condition, timeout=int(timeout * 1000))
                if config.block_cookie_banners:
                    page.add_style_tag(content=self.COOKIE_BANNER_CSS)
                options = {"type": config.format if config.format != "webp" else "png", "full_page": config.full_page}
                if options["type"] == "jpeg":
                    options["quality"] = config.quality
                return page.screenshot(**options)
            finally:
                browser.close()


# ============================================================================
# VALIDATION
# ============================================================================

def sniff_image_type(data: bytes) -> Optional[str]:
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return "image/png"
    if data.startswith(b'\xff\xd8\xff'):
        return "image/jpeg"
    if data[:6] in (b'GIF87a', b'GIF89a'):
        return "image/gif"
    if data.startswith(b'RIFF') and data[8:12] == b'WEBP':
        return "image/webp"
    return None


class ScreenshotValidator:
    """Scores a screenshot reference; only ``is_valid`` artifacts at or above the threshold are used.

    Reachable +40, image content type +30, size within 10KB..5MB +30.
    Under 10KB (probably a blank capture) costs 30, over 5MB costs 10.
    """

    def __init__(self, session: Optional[requests.Session] = None, threshold: int = 50):
        self.session = session or requests.Session()
        self.threshold = threshold

    def accepts(self, validation: ScreenshotValidation) -> bool:
        return validation.is_valid and validation.score >= self.threshold

    def validate(self, reference: Reference, timeout: float = 10.0) -> Tuple[ScreenshotValidation, Optional[str]]:
        if isinstance(reference, (bytes, bytearray)):
            return self._validate_bytes(bytes(reference))
        return self._validate_url(reference, timeout)

    def _score_size(self, size: Optional[int], reasons: List[str]) -> int:
        if size is None:
            reasons.append("size unknown")
            return 0
        if size < MIN_IMAGE_BYTES:
            reasons.append(f"image is only {size} bytes, likely a blank capture")
            return -PENALTY_TOO_SMALL
        if size > MAX_IMAGE_BYTES:
            reasons.append(f"image is {size} bytes, larger than 5MB")
            return -PENALTY_TOO_LARGE
        return SCORE_SIZE_OK

    def _validate_bytes(self, data: bytes):
        reasons: List[str] = []
        score = SCORE_REACHABLE
        content_type = sniff_image_type(data)
        is_valid = content_type is not None
        if is_valid:
            score += SCORE_IMAGE_TYPE
        else:
            reasons.append("bytes are not a recognised image format")
        score += self._score_size(len(data), reasons)
        return ScreenshotValidation(is_valid=is_valid, score=max(0, min(100, score)), reasons=reasons), content_type

    def _validate_url(self, url: str, timeout: float):
        reasons: List[str] = []
        if not url.startswith(("http://", "https://")):
            return ScreenshotValidation(is_valid=False, score=0, reasons=["reference is not an http(s) URL"]), None

        try:
            response = self.session.head(url, allow_redirects=True, timeout=timeout)
            if response.status_code == 405:
                # Some image hosts refuse HEAD; fall back to a streamed GET
                response = self.session.get(url, stream=True, allow_redirects=True, timeout=timeout)
                response.close()
        except requests.RequestException as e:
            return ScreenshotValidation(is_valid=False, score=0, reasons=[f"unreachable: {e}"]), None

        if response.status_code >= 400:
            return ScreenshotValidation(
                is_valid=False, score=0, reasons=[f"HEAD returned {response.status_code}"]
            ), None

        score = SCORE_REACHABLE
        content_type = (response.headers.get("content-type") or "").split(";")[0].strip().lower()
        is_valid = content_type.startswith("image/")
        if is_valid:
            score += SCORE_IMAGE_TYPE
        else:
            reasons.append(f"content-type is {content_type or 'missing'}, not image/*")

        length = response.headers.get("content-length")
        size = int(length) if length and length.isdigit() else None
        score += self._score_size(size, reasons)

        return ScreenshotValidation(
            is_valid=is_valid, score=max(0, min(100, score)), reasons=reasons
        ), content_type or None


# ============================================================================
# CHAIN
# ============================================================================

class ScreenshotAcquirer:
    """Tries providers in order until one produces a validated screenshot."""

    def __init__(
        self,
        providers: List[ScreenshotProvider],
        validator: ScreenshotValidator,
        config: ScreenshotConfig,
        policy: RetryPolicy,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        self.providers = providers
        self.validator = validator
        self.config = config
        self.chain = ProviderChain("screenshot", providers, policy, sleep=sleep)

    def acquire(self, url: str, context: Optional[ExtractionContext] = None) -> ChainOutcome[ScreenshotArtifact]:
        """First accepted artifact (``outcome.result`` is None when every provider is exhausted)."""
        context = context or ExtractionContext()
        if not self.providers:
            logger.info("No screenshot providers configured, skipping screenshot")
            return ChainOutcome(None, None, [])

        def attempt(provider: ScreenshotProvider, attempt_index: int) -> ScreenshotArtifact:
            timeout = context.cap_timeout(self.config.timeout)
            reference = provider.render(url, self.config, timeout)
            validation, content_type = self.validator.validate(reference, timeout=context.cap_timeout(10.0))
            if not self.validator.accepts(validation):
                raise ProfileValidationError(
                    provider.name,
                    f"screenshot rejected (score {validation.score}): {'; '.join(validation.reasons) or 'invalid'}",
                    attempt_index,
                )
            logger.debug(f"Screenshot from {provider.name} scored {validation.score}: {validation.reasons}")
            return ScreenshotArtifact(
                reference=reference,
                provider=provider.name,
                attempt_index=attempt_index,
                validation=validation,
                content_type=content_type,
            )

        outcome = self.chain.run(attempt, context)
        if not outcome.succeeded:
            logger.warning("No usable screenshot, continuing with heuristic extraction only")
        return outcome


def build_screenshot_providers(
    settings: PipelineSettings,
    session: Optional[requests.Session] = None,
    prefetched: Optional[str] = None,
) -> List[ScreenshotProvider]:
    """Providers in fallback order, limited to the ones that are configured."""
    retries = settings.screenshot_max_retries
    providers: List[ScreenshotProvider] = []
    if prefetched:
        providers.append(PrefetchedScreenshotProvider(prefetched))
    if settings.screenshotone_access_key:
        providers.append(ScreenshotOneProvider(settings.screenshotone_access_key, max_retries=retries))
    if settings.hcti_user_id and settings.hcti_api_key:
        providers.append(HtmlCssToImageProvider(settings.hcti_user_id, settings.hcti_api_key, session=session, max_retries=retries))
    if settings.enable_screenshot_guru:
        providers.append(ScreenshotGuruProvider(max_retries=retries))
    if settings.enable_playwright:
        providers.append(PlaywrightScreenshotProvider(max_retries=retries))
    return providers
