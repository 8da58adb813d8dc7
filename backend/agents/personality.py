"""Brand personality taxonomy and the structural/color heuristic behind it."""
from typing import Iterable, List, Optional

from backend.app.models import PersonalityDescriptor
from backend.agents.color_theory import hex_to_hsl

PRIMARY_TRAITS = [
    "Modern", "Classic", "Playful", "Professional", "Creative",
    "Luxury", "Approachable", "Bold", "Minimalist",
]

SECONDARY_TRAITS = [
    "Innovative", "Trustworthy", "Energetic", "Sophisticated", "Friendly",
    "Reliable", "Dynamic", "Elegant", "Cutting-edge", "Traditional", "Warm",
    "Authoritative", "Fresh", "Established", "Youthful", "Premium", "Accessible",
    "Bold",
]

INDUSTRY_CONTEXTS = [
    "Technology", "Finance", "Healthcare", "E-commerce", "Creative/Design",
    "Education", "Food & Beverage", "Fashion", "Real Estate", "Non-profit",
    "Entertainment", "Professional Services", "Manufacturing", "Startup",
]

DESIGN_APPROACHES = [
    "Minimalist", "Maximalist", "Flat Design", "Material Design", "Neumorphism",
    "Brutalist", "Typography-focused", "Image-heavy", "Illustration-based",
    "Grid-based", "Organic/Flowing", "Geometric", "Hand-crafted", "Corporate",
]

DEFAULT_PERSONALITY = PersonalityDescriptor()


def match_taxonomy(value, options: List[str]) -> Optional[str]:
    """Case-insensitive lookup of ``value`` in ``options``; None when absent."""
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for option in options:
        if option.lower() == wanted:
            return option
    return None


def _dedupe(traits: Iterable[str]) -> List[str]:
    seen = []
    for trait in traits:
        if trait not in seen:
            seen.append(trait)
    return seen


def derive_personality(html: str, primary_color: str) -> PersonalityDescriptor:
    """Guess a personality from page structure and the primary color's hue.

    Blue-ish, muted primaries read as Professional/Finance; saturated warm
    hues as Creative; green-ish as Approachable/Healthcare. Forms, video and
    animation markers adjust the result.
    """
    lowered = html.lower()
    has_navigation = '<nav' in lowered or 'navigation' in lowered
    has_button = '<button' in lowered or 'btn' in lowered
    has_form = '<form' in lowered
    has_video = '<video' in lowered or 'youtube' in lowered or 'vimeo' in lowered
    has_animation = 'animation' in lowered or 'transition' in lowered

    hsl = hex_to_hsl(primary_color)
    is_blueish = 200 <= hsl.h <= 260
    is_redish = hsl.h >= 340 or hsl.h <= 20
    is_greenish = 80 <= hsl.h <= 160
    is_orangish = 20 <= hsl.h <= 60
    is_high_saturation = hsl.s > 60

    primary_trait = "Professional"
    industry_context = "Professional Services"
    design_approach = "Corporate"
    secondary_traits = ["Reliable", "Trustworthy"]

    if is_blueish and not is_high_saturation:
        industry_context = "Finance"
        secondary_traits.append("Established")
    elif is_blueish and has_animation:
        primary_trait = "Modern"
        industry_context = "Technology"
        design_approach = "Minimalist"
        secondary_traits = ["Innovative", "Cutting-edge"]
    elif is_high_saturation and (is_redish or is_orangish):
        primary_trait = "Creative"
        industry_context = "Creative/Design"
        design_approach = "Typography-focused"
        secondary_traits = ["Bold", "Dynamic"]
    elif is_greenish:
        primary_trait = "Approachable"
        industry_context = "Healthcare"
        secondary_traits = ["Trustworthy", "Warm"]
    elif has_button and has_form:
        industry_context = "E-commerce"
        design_approach = "Grid-based"

    if has_video or has_animation:
        secondary_traits.append("Dynamic")

    if has_navigation and has_form:
        design_approach = "Corporate"

    return PersonalityDescriptor(
        primary_trait=primary_trait,
        secondary_traits=_dedupe(secondary_traits)[:3],
        industry_context=industry_context,
        design_approach=design_approach,
    )


def sanitize_personality(raw) -> Optional[PersonalityDescriptor]:
    """Map a loosely-typed personality object onto the taxonomy; None if there is no object."""
    if not isinstance(raw, dict):
        return None

    secondary = raw.get("secondary_traits")
    if isinstance(secondary, list):
        matched = [match_taxonomy(t, SECONDARY_TRAITS) for t in secondary]
        secondary_traits = _dedupe(t for t in matched if t)[:3]
    else:
        secondary_traits = list(DEFAULT_PERSONALITY.secondary_traits)
    if not secondary_traits:
        secondary_traits = list(DEFAULT_PERSONALITY.secondary_traits)

    return PersonalityDescriptor(
        primary_trait=match_taxonomy(raw.get("primary_trait"), PRIMARY_TRAITS) or DEFAULT_PERSONALITY.primary_trait,
        secondary_traits=secondary_traits,
        industry_context=match_taxonomy(raw.get("industry_context"), INDUSTRY_CONTEXTS) or DEFAULT_PERSONALITY.industry_context,
        design_approach=match_taxonomy(raw.get("design_approach"), DESIGN_APPROACHES) or DEFAULT_PERSONALITY.design_approach,
    )
