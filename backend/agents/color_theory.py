"""Color filtering, ranking and harmonization.

Candidates are filtered down to plausible brand colors, ranked by how often
they appear, and the strongest one seeds a primary/secondary/accent triad:
the secondary is a light, desaturated near-complement (+180 degrees) and the
accent a triadic hue (+120 degrees).
"""
from functools import cmp_to_key
from typing import Iterable, List, Sequence, Tuple

from backend.app.models import HSL, ColorCandidate, ColorTriad

# Fallback triad used when no candidate survives filtering. Fusion treats
# these, together with pure black and white, as generic.
FALLBACK_PRIMARY = "#E74C3C"
FALLBACK_SECONDARY = "#FFFFFF"
FALLBACK_ACCENT = "#3498DB"
DEFAULT_TRIAD = ColorTriad(primary=FALLBACK_PRIMARY, secondary=FALLBACK_SECONDARY, accent=FALLBACK_ACCENT)

GRAY_TOLERANCE = 15
MIN_SATURATION = 20.0
MAX_LIGHTNESS = 85.0
MIN_LIGHTNESS = 15.0
FREQUENCY_TIE_WINDOW = 2
HARMONIZE_TOP_N = 5


# ============================================================================
# CONVERSIONS
# ============================================================================

def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    hex_clean = hex_color.lstrip('#')
    return int(hex_clean[0:2], 16), int(hex_clean[2:4], 16), int(hex_clean[4:6], 16)


def rgb_to_hex(r: int, g: int, b: int) -> str:
    r, g, b = (max(0, min(255, int(c))) for c in (r, g, b))
    return f"#{r:02X}{g:02X}{b:02X}"


def hex_to_hsl(hex_color: str) -> HSL:
    """Convert ``#RRGGBB`` to HSL (degrees, percent, percent)."""
    r, g, b = (c / 255 for c in hex_to_rgb(hex_color))
    high, low = max(r, g, b), min(r, g, b)
    h = s = 0.0
    l = (high + low) / 2

    if high != low:
        d = high - low
        s = d / (2 - high - low) if l > 0.5 else d / (high + low)
        if high == r:
            h = (g - b) / d + (6 if g < b else 0)
        elif high == g:
            h = (b - r) / d + 2
        else:
            h = (r - g) / d + 4
        h /= 6

    return HSL(h=h * 360, s=s * 100, l=l * 100)


def _hue_to_rgb(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6:
        return p + (q - p) * 6 * t
    if t < 1 / 2:
        return q
    if t < 2 / 3:
        return p + (q - p) * (2 / 3 - t) * 6
    return p


def hsl_to_hex(h: float, s: float, l: float) -> str:
    """Convert HSL (degrees, percent, percent) to upper-case ``#RRGGBB``."""
    h = (h % 360) / 360
    s = max(0.0, min(100.0, s)) / 100
    l = max(0.0, min(100.0, l)) / 100

    if s == 0:
        r = g = b = l
    else:
        q = l * (1 + s) if l < 0.5 else l + s - l * s
        p = 2 * l - q
        r = _hue_to_rgb(p, q, h + 1 / 3)
        g = _hue_to_rgb(p, q, h)
        b = _hue_to_rgb(p, q, h - 1 / 3)

    return rgb_to_hex(round(r * 255), round(g * 255), round(b * 255))


# ============================================================================
# FILTERING AND RANKING
# ============================================================================

def is_near_gray(hex_color: str, tolerance: int = GRAY_TOLERANCE) -> bool:
    r, g, b = hex_to_rgb(hex_color)
    return max(abs(r - g), abs(g - b), abs(r - b)) <= tolerance


def is_brand_candidate(hex_color: str) -> bool:
    """Whether a color survives the filters: not black/white, gray, washed out or near-black."""
    hex_color = hex_color.upper()
    if hex_color in ("#000000", "#FFFFFF"):
        return False
    if is_near_gray(hex_color):
        return False
    hsl = hex_to_hsl(hex_color)
    if hsl.s < MIN_SATURATION:
        return False
    if hsl.l > MAX_LIGHTNESS:  # probable background
        return False
    if hsl.l < MIN_LIGHTNESS:  # probable text
        return False
    return True


def filter_candidates(candidates: Iterable[ColorCandidate]) -> List[ColorCandidate]:
    return [c for c in candidates if is_brand_candidate(c.hex)]


def _compare(a: ColorCandidate, b: ColorCandidate) -> int:
    if abs(a.frequency - b.frequency) <= FREQUENCY_TIE_WINDOW:
        if a.hsl.s != b.hsl.s:
            return -1 if a.hsl.s > b.hsl.s else 1
    elif a.frequency != b.frequency:
        return b.frequency - a.frequency
    # Stable, input-order independent tie-break
    return (a.hex > b.hex) - (a.hex < b.hex)


def rank_candidates(candidates: Iterable[ColorCandidate]) -> List[ColorCandidate]:
    """Most frequent first; near-ties (within 2 occurrences) go to the more saturated color."""
    ordered = sorted(candidates, key=lambda c: c.hex)
    return sorted(ordered, key=cmp_to_key(_compare))


# ============================================================================
# HARMONIZATION
# ============================================================================

def derive_secondary(primary: HSL) -> Tuple[float, float, float]:
    return (primary.h + 180) % 360, primary.s * 0.3, min(90.0, primary.l + 30)


def derive_accent(primary: HSL) -> Tuple[float, float, float]:
    return (primary.h + 120) % 360, max(40.0, primary.s * 0.8), max(30.0, min(70.0, primary.l))


def _distinct(hsl: Tuple[float, float, float], taken: Sequence[str]) -> str:
    """Render ``hsl``, stepping lightness until it differs from every color in ``taken``."""
    h, s, l = hsl
    color = hsl_to_hex(h, s, l)
    step = 0
    while color in taken and step < 20:
        step += 1
        delta = 5 * ((step + 1) // 2) * (1 if step % 2 else -1)
        color = hsl_to_hex(h, s, max(5.0, min(95.0, l + delta)))
    return color


def harmonize_colors(seeds: Sequence[str]) -> ColorTriad:
    """Build a triad from ranked seed colors (the most saturated seed becomes primary)."""
    if not seeds:
        return DEFAULT_TRIAD

    seeds = [s.upper() for s in seeds]
    primary = seeds[0]
    primary_hsl = hex_to_hsl(primary)
    for seed in seeds[1:]:
        seed_hsl = hex_to_hsl(seed)
        if seed_hsl.s > primary_hsl.s:
            primary, primary_hsl = seed, seed_hsl

    secondary = _distinct(derive_secondary(primary_hsl), [primary])
    accent = _distinct(derive_accent(primary_hsl), [primary, secondary])
    return ColorTriad(primary=primary, secondary=secondary, accent=accent)


def select_brand_colors(candidates: Iterable[ColorCandidate]) -> ColorTriad:
    """Filter, rank and harmonize a candidate set into a triad."""
    ranked = rank_candidates(filter_candidates(candidates))
    return harmonize_colors([c.hex for c in ranked[:HARMONIZE_TOP_N]])


def complete_triad(primary: str, taken: Sequence[str] = ()) -> ColorTriad:
    """Derive secondary and accent for a known primary, avoiding colors already in use."""
    primary = primary.upper()
    primary_hsl = hex_to_hsl(primary)
    avoid = [primary, *[t.upper() for t in taken]]
    secondary = _distinct(derive_secondary(primary_hsl), avoid)
    accent = _distinct(derive_accent(primary_hsl), [*avoid, secondary])
    return ColorTriad(primary=primary, secondary=secondary, accent=accent)
