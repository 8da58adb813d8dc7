"""Pipeline configuration.

Settings are read from the environment (and a ``.env`` file) once, by
``PipelineSettings.from_env()``, and then passed explicitly to the agent.
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from backend.app.models import ScreenshotConfig


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class RetryPolicy(BaseModel):
    """Bounded exponential backoff between attempts of one provider."""
    base_delay: float = Field(default=1.0, ge=0, description="Seconds before the second attempt")
    max_delay: float = Field(default=8.0, ge=0, description="Upper bound for any single backoff")
    inter_provider_delay: float = Field(default=0.5, ge=0, description="Pause before the next provider")

    def backoff_delay(self, attempt_index: int) -> float:
        return min(self.base_delay * (2 ** attempt_index), self.max_delay)


class FusionWeights(BaseModel):
    """Weights applied to confidence sub-scores when both sources are present."""
    vision: float = Field(default=0.7, ge=0, le=1)
    heuristic: float = Field(default=0.3, ge=0, le=1)

    @model_validator(mode="after")
    def _check_sum(self):
        if abs(self.vision + self.heuristic - 1.0) > 1e-6:
            raise ValueError("fusion weights must sum to 1.0")
        return self


class PipelineSettings(BaseModel):
    """Everything the extraction agent needs, injected at construction time."""

    # Document retrieval
    fetch_timeout: float = Field(default=20.0, gt=0)
    firecrawl_api_key: str = ""
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    user_agent: str = (
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
    )
    max_stylesheets: int = Field(default=5, ge=0)

    # Screenshot acquisition
    screenshot: ScreenshotConfig = Field(default_factory=ScreenshotConfig)
    screenshot_retry: RetryPolicy = Field(default_factory=RetryPolicy)
    screenshot_max_retries: int = Field(default=2, ge=1)
    validation_threshold: int = Field(default=50, ge=0, le=100)
    screenshotone_access_key: str = ""
    hcti_user_id: str = ""
    hcti_api_key: str = ""
    enable_screenshot_guru: bool = True
    enable_playwright: bool = False

    # Vision inference
    vision_retry: RetryPolicy = Field(default_factory=lambda: RetryPolicy(base_delay=0.5, max_delay=4.0))
    vision_max_retries: int = Field(default=1, ge=1)
    vision_timeout: float = Field(default=60.0, gt=0)
    openai_api_key: str = ""
    openai_vision_model: str = "gpt-4o"
    gemini_api_key: str = ""
    gemini_vision_model: str = "gemini-2.5-flash"
    ollama_vision_model: Optional[str] = None
    ollama_base_url: str = "http://localhost:11434"

    # Fusion
    fusion_weights: FusionWeights = Field(default_factory=FusionWeights)

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from environment variables (loads ``.env`` first)."""
        load_dotenv()

        vision_weight = _env_float("BRAND_VISION_WEIGHT", 0.7)
        return cls(
            fetch_timeout=_env_float("BRAND_FETCH_TIMEOUT", 20.0),
            firecrawl_api_key=_env_str("FIRECRAWL_API_KEY"),
            firecrawl_base_url=_env_str("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev"),
            max_stylesheets=_env_int("BRAND_MAX_STYLESHEETS", 5),
            screenshot=ScreenshotConfig(
                width=_env_int("BRAND_SCREENSHOT_WIDTH", 1200),
                height=_env_int("BRAND_SCREENSHOT_HEIGHT", 800),
                timeout=_env_float("BRAND_SCREENSHOT_TIMEOUT", 30.0),
            ),
            screenshot_retry=RetryPolicy(
                base_delay=_env_float("BRAND_SCREENSHOT_BASE_DELAY", 1.0),
                max_delay=_env_float("BRAND_SCREENSHOT_MAX_DELAY", 8.0),
                inter_provider_delay=_env_float("BRAND_SCREENSHOT_PROVIDER_DELAY", 0.5),
            ),
            screenshot_max_retries=_env_int("BRAND_SCREENSHOT_MAX_RETRIES", 2),
            validation_threshold=_env_int("BRAND_SCREENSHOT_THRESHOLD", 50),
            screenshotone_access_key=_env_str("SCREENSHOTONE_ACCESS_KEY"),
            hcti_user_id=_env_str("HCTI_USER_ID"),
            hcti_api_key=_env_str("HCTI_API_KEY"),
            enable_screenshot_guru=_env_bool("BRAND_ENABLE_SCREENSHOT_GURU", True),
            enable_playwright=_env_bool("BRAND_ENABLE_PLAYWRIGHT", False),
            vision_max_retries=_env_int("BRAND_VISION_MAX_RETRIES", 1),
            vision_timeout=_env_float("BRAND_VISION_TIMEOUT", 60.0),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_vision_model=_env_str("OPENAI_VISION_MODEL", "gpt-4o"),
            gemini_api_key=_env_str("GEMINI_API_KEY") or _env_str("GOOGLE_API_KEY"),
            gemini_vision_model=_env_str("GEMINI_VISION_MODEL", "gemini-2.5-flash"),
            ollama_vision_model=_env_str("OLLAMA_VISION_MODEL") or None,
            ollama_base_url=_env_str("OLLAMA_BASE_URL", "http://localhost:11434"),
            fusion_weights=FusionWeights(vision=vision_weight, heuristic=round(1.0 - vision_weight, 6)),
        )
