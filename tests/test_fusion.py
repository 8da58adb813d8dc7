import pytest

from backend.app.config import FusionWeights
from backend.app.models import BrandProfile, ConfidenceScores, PersonalityDescriptor
from backend.agents.color_theory import FALLBACK_ACCENT, FALLBACK_PRIMARY, FALLBACK_SECONDARY
from backend.agents.fusion import (
    combine_confidence,
    fuse_profiles,
    is_generic,
    select_best_color,
    select_best_name,
)
from backend.agents.sanitize import sanitize_vision_response


def scores(value):
    return ConfidenceScores(name=value, colors=value, typography=value, logo=value, personality=value, overall=value)


def profile(**overrides):
    fields = dict(
        name="Acme",
        primary_color="#1E6FD9",
        secondary_color="#DCE6F2",
        accent_color="#D91E6F",
        font_family="Inter",
        logo_url=None,
        confidence=scores(0.3),
    )
    fields.update(overrides)
    return BrandProfile(**fields)


def assert_distinct_and_not_generic(result):
    assert len(set(result.colors())) == 3
    assert not any(is_generic(c) for c in result.colors())


def test_without_vision_heuristic_profile_is_returned_verbatim():
    heuristic = profile()
    assert fuse_profiles(heuristic, None) is heuristic


def test_non_generic_vision_primary_beats_generic_heuristic():
    heuristic = profile(primary_color=FALLBACK_PRIMARY, secondary_color=FALLBACK_SECONDARY, accent_color=FALLBACK_ACCENT)
    vision = profile(primary_color="#8E44AD", secondary_color="#F4ECF7", accent_color="#27AE60", confidence=scores(0.9))

    fused = fuse_profiles(heuristic, vision)

    assert fused.colors() == ("#8E44AD", "#F4ECF7", "#27AE60")


def test_color_precedence():
    assert select_best_color("#1E6FD9", "#8E44AD", FALLBACK_PRIMARY) == "#8E44AD"
    assert select_best_color("#1E6FD9", "#000000", FALLBACK_PRIMARY) == "#1E6FD9"
    assert select_best_color("#FFFFFF", "#000000", FALLBACK_PRIMARY) == "#000000"
    assert select_best_color("#FFFFFF", None, FALLBACK_PRIMARY) == FALLBACK_PRIMARY


def test_name_precedence():
    assert select_best_name("Acme", "Acme Rockets") == "Acme Rockets"
    assert select_best_name("Acme", "Brand Name") == "Acme"
    assert select_best_name("Acme", "A") == "Acme"
    assert select_best_name("Brand Name", None) == "Brand Name"


def test_font_logo_and_personality_rules():
    heuristic = profile(font_family="Inter", logo_url="https://acme.example/logo.svg")
    vision = profile(
        font_family="Arial",
        logo_url="https://acme.example/other.png",
        personality=PersonalityDescriptor(primary_trait="Playful", secondary_traits=["Friendly"]),
    )

    fused = fuse_profiles(heuristic, vision)

    assert fused.font_family == "Inter"
    assert fused.logo_url == "https://acme.example/logo.svg"
    assert fused.personality.primary_trait == "Playful"

    fused = fuse_profiles(profile(logo_url=None), profile(font_family="Poppins", logo_url="https://acme.example/v.png"))
    assert fused.font_family == "Poppins"
    assert fused.logo_url == "https://acme.example/v.png"


def test_confidence_is_weighted_and_overall_is_mean():
    combined = combine_confidence(scores(0.9), scores(0.3), FusionWeights())
    assert combined.name == pytest.approx(0.72)
    assert combined.overall == pytest.approx(0.72)

    mixed = ConfidenceScores(name=1.0, colors=0.5, typography=0.5, logo=0.0, personality=0.5)
    combined = combine_confidence(mixed, scores(0.5), FusionWeights(vision=0.5, heuristic=0.5))
    assert combined.name == pytest.approx(0.75)
    assert combined.logo == pytest.approx(0.25)
    assert combined.overall == pytest.approx(0.5)


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError):
        FusionWeights(vision=0.8, heuristic=0.3)


def test_duplicate_colors_are_re_derived_from_primary():
    heuristic = profile(secondary_color="#FFFFFF", accent_color="#FFFFFF")
    vision = profile(primary_color="#8E44AD", secondary_color="#8E44AD", accent_color="#000000")

    fused = fuse_profiles(heuristic, vision)

    assert fused.primary_color == "#8E44AD"
    assert_distinct_and_not_generic(fused)


def test_generic_primary_is_replaced_when_any_source_has_a_real_color():
    heuristic = profile(primary_color="#000000", secondary_color="#FFFFFF", accent_color="#27AE60")
    vision = profile(primary_color="#FFFFFF", secondary_color=FALLBACK_SECONDARY, accent_color="#000000")

    fused = fuse_profiles(heuristic, vision)

    assert fused.primary_color == "#27AE60"
    assert_distinct_and_not_generic(fused)


def test_all_generic_sources_keep_raw_values():
    heuristic = profile(primary_color=FALLBACK_PRIMARY, secondary_color=FALLBACK_SECONDARY, accent_color=FALLBACK_ACCENT)
    vision = profile(primary_color=FALLBACK_PRIMARY, secondary_color=FALLBACK_SECONDARY, accent_color=FALLBACK_ACCENT)

    fused = fuse_profiles(heuristic, vision)

    assert fused.colors() == (FALLBACK_PRIMARY, FALLBACK_SECONDARY, FALLBACK_ACCENT)


def test_heuristic_personality_is_used_when_vision_gave_none():
    derived = PersonalityDescriptor(primary_trait="Creative", secondary_traits=["Bold"], industry_context="Creative/Design")
    heuristic = profile(personality=derived)
    vision = sanitize_vision_response('{"name": "Acme Rockets", "primary_color": "#8E44AD"}')

    fused = fuse_profiles(heuristic, vision)

    assert fused.personality == derived
