"""Merge the heuristic profile with the (optional) vision profile."""
from typing import List, Optional

from backend.app.config import FusionWeights
from backend.app.logger import logger
from backend.app.models import (
    DEFAULT_FONT_FAMILY,
    PLACEHOLDER_BRAND_NAME,
    BrandProfile,
    ConfidenceScores,
)
from backend.agents.color_theory import (
    FALLBACK_ACCENT,
    FALLBACK_PRIMARY,
    FALLBACK_SECONDARY,
    complete_triad,
)

# Pure black/white plus the default fallback constants of both sources.
GENERIC_COLORS = frozenset({"#000000", "#FFFFFF", FALLBACK_PRIMARY, FALLBACK_SECONDARY, FALLBACK_ACCENT})


def is_generic(color: Optional[str]) -> bool:
    return not color or color.upper() in GENERIC_COLORS


def select_best_name(heuristic: str, vision: Optional[str]) -> str:
    if vision and vision != PLACEHOLDER_BRAND_NAME and len(vision) > 1:
        return vision
    if heuristic and heuristic != PLACEHOLDER_BRAND_NAME:
        return heuristic
    return PLACEHOLDER_BRAND_NAME


def select_best_color(heuristic: str, vision: Optional[str], default: str) -> str:
    if vision and not is_generic(vision):
        return vision
    if heuristic and not is_generic(heuristic):
        return heuristic
    return vision or default


def combine_confidence(
    vision: ConfidenceScores,
    heuristic: ConfidenceScores,
    weights: FusionWeights,
) -> ConfidenceScores:
    """Weighted average of each sub-score; ``overall`` is the mean of the weighted sub-scores."""
    combined = {}
    for field in ("name", "colors", "typography", "logo", "personality"):
        combined[field] = round(
            getattr(vision, field) * weights.vision + getattr(heuristic, field) * weights.heuristic, 2
        )
    scores = ConfidenceScores(**combined)
    scores.overall = scores.mean()
    return scores


def _repair_colors(primary: str, secondary: str, accent: str, pool: List[str]) -> List[str]:
    """Replace generic or repeated slots with colors derived from a non-generic primary."""
    if is_generic(primary):
        promoted = next((c for c in pool if not is_generic(c)), None)
        if promoted is None:
            return [primary, secondary, accent]
        logger.debug(f"Promoting {promoted} to primary over generic {primary}")
        primary = promoted

    keep_secondary = not is_generic(secondary) and secondary != primary
    keep_accent = not is_generic(accent) and accent not in (primary, secondary if keep_secondary else None)
    if keep_secondary and keep_accent:
        return [primary, secondary, accent]

    taken = [c for c, keep in ((secondary, keep_secondary), (accent, keep_accent)) if keep]
    derived = complete_triad(primary, taken=taken)
    if not keep_secondary:
        secondary = derived.secondary
    if not keep_accent:
        accent = derived.accent
    return [primary, secondary, accent]


def fuse_profiles(
    heuristic: BrandProfile,
    vision: Optional[BrandProfile] = None,
    weights: Optional[FusionWeights] = None,
) -> BrandProfile:
    """Combine both sources attribute by attribute.

    Without a vision profile the heuristic profile is returned unchanged.
    """
    if vision is None:
        logger.info("No vision profile, using heuristic profile as-is")
        return heuristic
    weights = weights or FusionWeights()

    primary = select_best_color(heuristic.primary_color, vision.primary_color, FALLBACK_PRIMARY)
    secondary = select_best_color(heuristic.secondary_color, vision.secondary_color, FALLBACK_SECONDARY)
    accent = select_best_color(heuristic.accent_color, vision.accent_color, FALLBACK_ACCENT)
    primary, secondary, accent = _repair_colors(
        primary, secondary, accent, pool=[*vision.colors(), *heuristic.colors()]
    )

    fused = BrandProfile(
        name=select_best_name(heuristic.name, vision.name),
        primary_color=primary,
        secondary_color=secondary,
        accent_color=accent,
        font_family=vision.font_family if vision.font_family != DEFAULT_FONT_FAMILY else heuristic.font_family,
        logo_url=heuristic.logo_url or vision.logo_url,
        personality=vision.personality if "personality" in vision.model_fields_set else heuristic.personality,
        confidence=combine_confidence(vision.confidence, heuristic.confidence, weights),
    )
    logger.info(
        f"Fused profile: {fused.name} {fused.primary_color}/{fused.secondary_color}/{fused.accent_color} "
        f"font={fused.font_family} overall={fused.confidence.overall}"
    )
    return fused
