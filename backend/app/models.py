"""Data models for the brand profile pipeline."""
import re
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field, field_validator


HEX_COLOR_PATTERN = re.compile(r'^#[0-9A-F]{6}$')

# Shared placeholders. Fusion treats these as "nothing was found".
PLACEHOLDER_BRAND_NAME = "Brand Name"
DEFAULT_FONT_FAMILY = "Arial"

SourceTag = Literal[
    "css-literal",
    "css-variable",
    "inline-style",
    "brand-element",
    "svg",
    "gradient",
    "css-in-js",
]


def normalize_hex(value: str) -> str:
    """Upper-case a hex color and check it against the strict #RRGGBB pattern."""
    if not isinstance(value, str):
        raise ValueError(f"hex color must be a string, got {type(value).__name__}")
    value = value.strip().upper()
    if not HEX_COLOR_PATTERN.match(value):
        raise ValueError(f"invalid hex color: {value!r}")
    return value


HexColor = Annotated[str, AfterValidator(normalize_hex)]


# ============================================================================
# COLOR MODELS
# ============================================================================

class HSL(BaseModel):
    """Hue in degrees [0, 360), saturation and lightness in percent."""
    h: float = Field(default=0.0, description="Hue (degrees)")
    s: float = Field(default=0.0, description="Saturation (percent)")
    l: float = Field(default=0.0, description="Lightness (percent)")


class ColorCandidate(BaseModel):
    """A color found in markup or stylesheets, with how often it appeared."""
    hex: HexColor = Field(description="Hex color code")
    hsl: HSL = Field(description="HSL form of the color")
    frequency: int = Field(default=1, ge=1, description="Number of occurrences")
    source_tag: SourceTag = Field(description="Scan that first found the color")


class ColorTriad(BaseModel):
    """Harmonized primary/secondary/accent colors."""
    primary: HexColor
    secondary: HexColor
    accent: HexColor

    def as_tuple(self):
        return (self.primary, self.secondary, self.accent)


# ============================================================================
# CAPTURE MODELS
# ============================================================================

class CapturedDocument(BaseModel):
    """Raw markup and stylesheet text for one request."""
    url: str = Field(description="Page URL")
    html: str = Field(default="", description="Raw HTML")
    stylesheet_text: str = Field(default="", description="Inline and linked CSS")
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    screenshot_hint: Optional[str] = Field(
        default=None, description="Screenshot reference returned by the scraping backend"
    )


class ScreenshotConfig(BaseModel):
    """Rendering options shared by every screenshot provider."""
    width: int = Field(default=1200, gt=0)
    height: int = Field(default=800, gt=0)
    format: Literal["jpeg", "png", "webp"] = "jpeg"
    quality: int = Field(default=85, ge=1, le=100)
    full_page: bool = False
    wait_condition: Literal["load", "domcontentloaded", "networkidle"] = "networkidle"
    block_ads: bool = True
    block_cookie_banners: bool = True
    timeout: float = Field(default=30.0, gt=0, description="Seconds")


class ScreenshotValidation(BaseModel):
    is_valid: bool = False
    score: int = 0
    reasons: List[str] = Field(default_factory=list)


class ScreenshotArtifact(BaseModel):
    """One provider's capture, with the result of validating it."""
    reference: Union[str, bytes] = Field(description="Image URL or raw image bytes")
    provider: str
    attempt_index: int = 0
    validation: ScreenshotValidation = Field(default_factory=ScreenshotValidation)
    content_type: Optional[str] = None

    @property
    def is_url(self) -> bool:
        return isinstance(self.reference, str)


class ProviderAttemptRecord(BaseModel):
    """Diagnostic trail entry for one provider attempt."""
    stage: Literal["screenshot", "vision"]
    provider: str
    attempt_index: int
    outcome: Literal["success", "failure", "invalid"]
    latency: float = Field(default=0.0, description="Seconds")
    error_reason: Optional[str] = None


# ============================================================================
# BRAND PROFILE MODELS
# ============================================================================

class PersonalityDescriptor(BaseModel):
    """Brand personality, drawn from a fixed taxonomy."""
    primary_trait: str = "Professional"
    secondary_traits: List[str] = Field(default_factory=lambda: ["Reliable", "Trustworthy"], max_length=3)
    industry_context: str = "Professional Services"
    design_approach: str = "Corporate"


class ConfidenceScores(BaseModel):
    """Per-attribute confidence, every value in [0, 1]."""
    name: float = 0.5
    colors: float = 0.5
    typography: float = 0.5
    logo: float = 0.3
    personality: float = 0.5
    overall: float = 0.5

    @field_validator("name", "colors", "typography", "logo", "personality", "overall", mode="before")
    @classmethod
    def _clamp(cls, value):
        # Last guard only; untrusted model output is range-checked in sanitize
        value = float(value)
        if value != value:  # NaN
            return 0.0
        return min(1.0, max(0.0, value))

    def sub_scores(self) -> List[float]:
        return [self.name, self.colors, self.typography, self.logo, self.personality]

    def mean(self) -> float:
        return round(sum(self.sub_scores()) / 5, 2)


class BrandProfile(BaseModel):
    """The pipeline's only durable output."""
    name: str = PLACEHOLDER_BRAND_NAME
    primary_color: HexColor
    secondary_color: HexColor
    accent_color: HexColor
    font_family: str = DEFAULT_FONT_FAMILY
    logo_url: Optional[str] = None
    personality: PersonalityDescriptor = Field(default_factory=PersonalityDescriptor)
    confidence: ConfidenceScores = Field(default_factory=ConfidenceScores)

    def colors(self):
        return (self.primary_color, self.secondary_color, self.accent_color)


class ExtractionResult(BaseModel):
    """A profile plus the provider trail that produced it."""
    profile: BrandProfile
    attempts: List[ProviderAttemptRecord] = Field(default_factory=list)
    screenshot_provider: Optional[str] = None
    vision_provider: Optional[str] = None


# ============================================================================
# API REQUEST/RESPONSE MODELS
# ============================================================================

class ExtractRequest(BaseModel):
    """Request model for brand extraction."""
    url: str = Field(description="Website URL to extract brand from")
    include_attempts: bool = Field(default=False, description="Return the provider attempt trail")
    deadline_seconds: Optional[float] = Field(default=None, gt=0, description="Overall time budget")


class ExtractResponse(BaseModel):
    """Response model for brand extraction."""
    brand_profile: BrandProfile
    attempts: List[ProviderAttemptRecord] = Field(default_factory=list)
