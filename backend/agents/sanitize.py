"""Strict normalisation of a vision model's free-text answer into a BrandProfile.

Every field is checked on its own: a bad color falls back to a default
color, a bad name to the placeholder, and so on. Only an answer that is not
a JSON object at all (or carries none of the expected keys) is rejected.
"""
import json
import re
from typing import Optional

from backend.app.errors import ProfileValidationError
from backend.app.models import (
    DEFAULT_FONT_FAMILY,
    HEX_COLOR_PATTERN,
    PLACEHOLDER_BRAND_NAME,
    BrandProfile,
    ConfidenceScores,
)
from backend.agents.color_theory import FALLBACK_ACCENT, FALLBACK_PRIMARY, FALLBACK_SECONDARY
from backend.agents.personality import sanitize_personality

MAX_BRAND_NAME_LENGTH = 100
MAX_FONT_FAMILY_LENGTH = 50
PROFILE_KEYS = (
    "name", "primary_color", "secondary_color", "accent_color",
    "font_family", "logo_url", "personality", "confidence",
)

FENCE_PATTERN = re.compile(r'```(?:json)?\s*(.*?)```', re.DOTALL | re.IGNORECASE)


def validate_hex_color(value, fallback: str) -> str:
    if isinstance(value, str):
        candidate = value.strip().upper()
        if HEX_COLOR_PATTERN.match(candidate):
            return candidate
    return fallback


def validate_brand_name(value) -> str:
    if isinstance(value, str):
        name = value.strip()
        if 0 < len(name) < MAX_BRAND_NAME_LENGTH:
            return name
    return PLACEHOLDER_BRAND_NAME


def validate_font_family(value) -> str:
    """First family of a font stack, quotes removed."""
    if isinstance(value, str):
        family = value.split(',')[0].strip().strip('\'"').strip()
        if 0 < len(family) < MAX_FONT_FAMILY_LENGTH:
            return family
    return DEFAULT_FONT_FAMILY


def validate_logo_url(value) -> Optional[str]:
    if isinstance(value, str):
        url = value.strip()
        if re.match(r'^https?://[^\s/]+', url, re.IGNORECASE):
            return url
    return None


def validate_confidence_scores(raw) -> ConfidenceScores:
    """Keep scores inside [0, 1]; missing, non-numeric or out-of-range scores fall back to their defaults.

    ``overall`` is replaced by the mean of the sub-scores when it is absent,
    unusable, left at the neutral 0.5, or far from that mean.
    """
    defaults = ConfidenceScores()
    if not isinstance(raw, dict):
        return defaults

    values = {}
    for field in ("name", "colors", "typography", "logo", "personality", "overall"):
        value = raw.get(field)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not 0 <= value <= 1:  # also rejects NaN
            continue
        values[field] = value

    scores = ConfidenceScores(**values)
    mean = scores.mean()
    overall = values.get("overall")
    suspicious = (
        overall is None
        or scores.overall == 0.5
        or abs(scores.overall - mean) > 0.25
    )
    if suspicious:
        scores.overall = mean
    return scores


def extract_json_object(text: str) -> dict:
    """Pull the first JSON object out of a model reply.

    Accepts a bare object, an object inside a ```json fence, or an object
    surrounded by prose.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError("empty response")

    candidates = [text.strip()]
    candidates.extend(match.strip() for match in FENCE_PATTERN.findall(text))
    start, end = text.find('{'), text.rfind('}')
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError("no JSON object found in response")


def sanitize_vision_response(text: str, provider: str = "vision") -> BrandProfile:
    """Parse and normalise a vision model reply. Raises ProfileValidationError if unusable."""
    try:
        data = extract_json_object(text)
    except ValueError as e:
        raise ProfileValidationError(provider, f"unparseable response: {e}")

    if not any(key in data for key in PROFILE_KEYS):
        raise ProfileValidationError(provider, "response has none of the brand profile fields")

    fields = dict(
        name=validate_brand_name(data.get("name")),
        primary_color=validate_hex_color(data.get("primary_color"), FALLBACK_PRIMARY),
        secondary_color=validate_hex_color(data.get("secondary_color"), FALLBACK_SECONDARY),
        accent_color=validate_hex_color(data.get("accent_color"), FALLBACK_ACCENT),
        font_family=validate_font_family(data.get("font_family")),
        logo_url=validate_logo_url(data.get("logo_url")),
        confidence=validate_confidence_scores(data.get("confidence")),
    )
    # Left unset when absent so fusion can tell it apart from an explicit answer
    personality = sanitize_personality(data.get("personality"))
    if personality is not None:
        fields["personality"] = personality
    return BrandProfile(**fields)
