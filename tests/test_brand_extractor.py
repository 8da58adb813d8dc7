import json

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from backend.app.config import PipelineSettings, RetryPolicy
from backend.app.errors import ExtractionCancelled, FetchError, ProviderError
from backend.agents.brand_extractor import BrandExtractionAgent, extract_brand_profile, normalize_url
from backend.agents.heuristics import HeuristicExtractor
from backend.agents.provider_chain import ExtractionContext
from backend.agents.screenshot import ScreenshotProvider
from backend.agents.vision import VisionProvider

VISION_REPLY = json.dumps({
    "name": "Acme Rockets",
    "primary_color": "#8E44AD",
    "secondary_color": "#F4ECF7",
    "accent_color": "#27AE60",
    "font_family": "Inter",
    "logo_url": None,
    "personality": {
        "primary_trait": "Modern",
        "secondary_traits": ["Innovative"],
        "industry_context": "Technology",
        "design_approach": "Minimalist",
    },
    "confidence": {"name": 0.9, "colors": 0.9, "typography": 0.8, "logo": 0.4, "personality": 0.7, "overall": 0.74},
})


class StaticFetcher:
    def __init__(self, document=None, error=None):
        self.document = document
        self.error = error
        self.urls = []

    def fetch(self, url, timeout=None):
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.document


class FailingScreenshots(ScreenshotProvider):
    name = "failing"

    def render(self, url, config, timeout):
        raise ProviderError(self.name, "render timed out")


class BytesScreenshots(ScreenshotProvider):
    name = "bytes"

    def __init__(self, data):
        super().__init__(max_retries=1)
        self.data = data

    def render(self, url, config, timeout):
        return self.data


class CountingVision(VisionProvider):
    name = "counting"

    def __init__(self):
        super().__init__(FakeListChatModel(responses=[VISION_REPLY]))
        self.calls = 0

    def infer(self, artifact, prompt, timeout=60.0):
        self.calls += 1
        return super().infer(artifact, prompt, timeout)


@pytest.fixture
def fast_settings():
    no_delay = RetryPolicy(base_delay=0, max_delay=0, inter_provider_delay=0)
    return PipelineSettings(screenshot_retry=no_delay, vision_retry=no_delay)


def make_agent(settings, document, screenshots, vision, fake_session, sleeps):
    return BrandExtractionAgent(
        settings=settings,
        fetcher=StaticFetcher(document),
        screenshot_providers=screenshots,
        vision_providers=vision,
        session=fake_session(),
        sleep=sleeps,
    )


def test_failed_screenshots_skip_vision_and_return_heuristic_profile(
    fast_settings, sample_document, fake_session, sleeps
):
    vision = CountingVision()
    agent = make_agent(
        fast_settings, sample_document, [FailingScreenshots(max_retries=2)], [vision], fake_session, sleeps
    )

    result = agent.extract_with_trail("https://acme.example/")

    assert vision.calls == 0
    assert result.profile == HeuristicExtractor().extract(sample_document)
    assert result.profile.confidence.overall < 0.5
    assert result.vision_provider is None
    assert [(a.stage, a.outcome) for a in result.attempts] == [("screenshot", "failure")] * 2


def test_successful_screenshot_and_vision_are_fused(fast_settings, sample_document, fake_session, sleeps, png_bytes):
    vision = CountingVision()
    agent = make_agent(fast_settings, sample_document, [BytesScreenshots(png_bytes)], [vision], fake_session, sleeps)

    result = agent.extract_with_trail("https://acme.example/")
    profile = result.profile

    assert vision.calls == 1
    assert result.screenshot_provider == "bytes"
    assert result.vision_provider == "counting"
    assert profile.name == "Acme Rockets"
    assert profile.primary_color == "#8E44AD"
    assert profile.logo_url == "https://acme.example/static/acme-logo.svg"
    assert profile.personality.primary_trait == "Modern"
    assert profile.confidence.overall > 0.5
    assert [a.stage for a in result.attempts] == ["screenshot", "vision"]


def test_screenshot_without_vision_models_keeps_heuristic_profile(
    fast_settings, sample_document, fake_session, sleeps, png_bytes
):
    agent = make_agent(fast_settings, sample_document, [BytesScreenshots(png_bytes)], [], fake_session, sleeps)

    result = agent.extract_with_trail("https://acme.example/")

    assert result.screenshot_provider == "bytes"
    assert result.vision_provider is None
    assert result.profile.confidence.overall < 0.5


def test_fetch_failure_propagates(fast_settings, fake_session, sleeps):
    agent = BrandExtractionAgent(
        settings=fast_settings,
        fetcher=StaticFetcher(error=FetchError("https://down.example/", "network error: refused")),
        screenshot_providers=[],
        vision_providers=[],
        session=fake_session(),
        sleep=sleeps,
    )

    with pytest.raises(FetchError):
        agent.extract("https://down.example/")


def test_cancelled_before_fetch_raises(fast_settings, sample_document, fake_session, sleeps):
    agent = make_agent(fast_settings, sample_document, [], [], fake_session, sleeps)
    context = ExtractionContext()
    context.cancel()

    with pytest.raises(ExtractionCancelled):
        agent.extract("https://acme.example/", context)
    assert agent.fetcher.urls == []


def test_heuristic_crash_still_yields_a_profile(fast_settings, sample_document, fake_session, sleeps):
    class ExplodingExtractor:
        def extract(self, document):
            raise RuntimeError("parser blew up")

    agent = make_agent(fast_settings, sample_document, [], [], fake_session, sleeps)
    agent.heuristic_extractor = ExplodingExtractor()

    profile = agent.extract("https://acme.example/")

    assert profile.confidence.overall < 0.5
    assert len(set(profile.colors())) == 3


def test_module_entry_point_and_url_normalisation(fast_settings, sample_document, fake_session, sleeps):
    agent = make_agent(fast_settings, sample_document, [], [], fake_session, sleeps)

    profile = extract_brand_profile("acme.example", agent=agent)

    assert profile.name == "Acme Rockets"
    assert agent.fetcher.urls == ["https://acme.example"]
    assert normalize_url("  http://acme.example ") == "http://acme.example"
    with pytest.raises(FetchError):
        agent.extract("   ")
