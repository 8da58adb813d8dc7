"""Vision inference: ask a multimodal chat model to read the brand off a screenshot."""
import base64
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, List, Optional

import requests
from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from backend.app.config import PipelineSettings, RetryPolicy
from backend.app.errors import ProviderError
from backend.app.logger import logger
from backend.app.models import BrandProfile, ScreenshotArtifact
from backend.agents.prompt_template import build_vision_prompt
from backend.agents.provider_chain import ChainOutcome, ExtractionContext, ProviderChain
from backend.agents.sanitize import sanitize_vision_response

VISION_TEMPERATURE = 0.05
VISION_MAX_TOKENS = 1200


def to_data_url(data: bytes, content_type: Optional[str] = None) -> str:
    encoded = base64.b64encode(data).decode('ascii')
    return f"data:{content_type or 'image/jpeg'};base64,{encoded}"


def response_text(response) -> str:
    """Flatten a chat model reply into plain text."""
    content = response.content if hasattr(response, 'content') else response
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get('type') == 'text':
                parts.append(part.get('text', ''))
        return ''.join(parts)
    return str(content)


class VisionProvider:
    """One chat model. ``infer`` returns the raw reply text, or raises."""

    name = "vision"
    # Whether image URLs must be downloaded and sent inline
    inline_images = False

    def __init__(self, llm, max_retries: int = 1, session: Optional[requests.Session] = None):
        self.llm = llm
        self.max_retries = max_retries
        self.session = session or requests.Session()

    def image_url(self, artifact: ScreenshotArtifact, timeout: float) -> str:
        if not artifact.is_url:
            return to_data_url(artifact.reference, artifact.content_type)
        if not self.inline_images:
            return artifact.reference
        response = self.session.get(artifact.reference, timeout=timeout)
        if response.status_code >= 400:
            raise ProviderError(self.name, f"could not download screenshot: HTTP {response.status_code}")
        content_type = (response.headers.get('content-type') or '').split(';')[0] or artifact.content_type
        return to_data_url(response.content, content_type)

    def _invoke(self, messages, timeout: float):
        """Call the model, giving up after ``timeout`` seconds even if the client is still waiting."""
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.llm.invoke, messages)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            raise ProviderError(self.name, f"no response within {timeout:.1f}s")
        finally:
            # Do not wait for an abandoned call; the client timeout ends it
            executor.shutdown(wait=False)

    def infer(self, artifact: ScreenshotArtifact, prompt: str, timeout: float = 60.0) -> str:
        message = HumanMessage(content=[
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": self.image_url(artifact, timeout), "detail": "high"}},
        ])
        text = response_text(self._invoke([message], timeout))
        if not text.strip():
            raise ProviderError(self.name, "empty response")
        return text


class OpenAIVisionProvider(VisionProvider):
    name = "openai"

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "OpenAIVisionProvider":
        llm = ChatOpenAI(
            model=settings.openai_vision_model,
            temperature=VISION_TEMPERATURE,
            api_key=settings.openai_api_key,
            timeout=settings.vision_timeout,
            max_retries=0,
            max_tokens=VISION_MAX_TOKENS,
        ).bind(response_format={"type": "json_object"})
        return cls(llm, max_retries=settings.vision_max_retries)


class GeminiVisionProvider(VisionProvider):
    name = "gemini"

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "GeminiVisionProvider":
        llm = ChatGoogleGenerativeAI(
            model=settings.gemini_vision_model,
            temperature=VISION_TEMPERATURE,
            google_api_key=settings.gemini_api_key,
            timeout=settings.vision_timeout,
            max_retries=0,
            max_output_tokens=VISION_MAX_TOKENS,
        )
        return cls(llm, max_retries=settings.vision_max_retries)


class OllamaVisionProvider(VisionProvider):
    """Local model served by Ollama; it only accepts inline image data."""

    name = "ollama"
    inline_images = True

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "OllamaVisionProvider":
        llm = ChatOllama(
            model=settings.ollama_vision_model,
            temperature=VISION_TEMPERATURE,
            format="json",
            base_url=settings.ollama_base_url,
            num_predict=VISION_MAX_TOKENS,
            client_kwargs={"timeout": settings.vision_timeout},
        )
        return cls(llm, max_retries=settings.vision_max_retries)


def build_vision_providers(settings: PipelineSettings) -> List[VisionProvider]:
    """Configured providers in fallback order: OpenAI, Gemini, then Ollama."""
    providers: List[VisionProvider] = []
    if settings.openai_api_key:
        providers.append(OpenAIVisionProvider.from_settings(settings))
    if settings.gemini_api_key:
        providers.append(GeminiVisionProvider.from_settings(settings))
    if settings.ollama_vision_model:
        providers.append(OllamaVisionProvider.from_settings(settings))
    if not providers:
        logger.warning("⚠ No vision model configured - set OPENAI_API_KEY, GEMINI_API_KEY or OLLAMA_VISION_MODEL")
    return providers


class VisionInferenceChain:
    """Runs the screenshot through each vision provider until one gives a usable profile."""

    def __init__(
        self,
        providers: List[VisionProvider],
        policy: RetryPolicy,
        timeout: float = 60.0,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        self.providers = providers
        self.timeout = timeout
        self.chain = ProviderChain("vision", providers, policy, sleep=sleep)

    def infer(
        self,
        artifact: ScreenshotArtifact,
        url: str,
        context: Optional[ExtractionContext] = None,
    ) -> ChainOutcome[BrandProfile]:
        context = context or ExtractionContext()
        if not self.providers:
            return ChainOutcome(None, None, [])
        prompt = build_vision_prompt(url)

        def attempt(provider: VisionProvider, attempt_index: int) -> BrandProfile:
            text = provider.infer(artifact, prompt, timeout=context.cap_timeout(self.timeout))
            logger.debug(f"{provider.name} raw response: {text[:500]}")
            return sanitize_vision_response(text, provider=provider.name)

        outcome = self.chain.run(attempt, context)
        if outcome.succeeded:
            profile = outcome.result
            logger.info(
                f"Vision profile from {outcome.provider}: {profile.name} "
                f"{profile.primary_color}/{profile.secondary_color}/{profile.accent_color} "
                f"(overall {profile.confidence.overall})"
            )
        return outcome
