"""Network-free brand extraction from markup and stylesheets.

Everything here works on strings already fetched by the document fetcher:
brand name, logo URL, font family and a deduplicated set of color
candidates. Color scans are plain functions registered in ``COLOR_SCANS``,
so a new source of candidates only has to be added to that list.
"""
import re
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from backend.app.logger import logger
from backend.app.models import (
    DEFAULT_FONT_FAMILY,
    PLACEHOLDER_BRAND_NAME,
    BrandProfile,
    CapturedDocument,
    ColorCandidate,
    ConfidenceScores,
)
from backend.agents.color_theory import DEFAULT_TRIAD, hex_to_hsl, rgb_to_hex, select_brand_colors
from backend.agents.personality import derive_personality

MAX_NAME_LENGTH = 50
GENERIC_FONT_FAMILIES = {
    'serif', 'sans-serif', 'monospace', 'cursive', 'fantasy', 'system-ui',
    'ui-sans-serif', 'ui-serif', 'ui-monospace', '-apple-system',
    'inherit', 'initial', 'unset', 'revert', 'emoji', 'math',
}
BRAND_TOKENS = ('brand', 'logo', 'header', 'nav', 'primary', 'accent')

# Heuristic-only confidences stay below 0.5 overall; vision evidence is
# what pushes a profile above that.
HEURISTIC_CONFIDENCE = {
    'name': (0.6, 0.3),
    'colors': (0.5, 0.3),
    'typography': (0.4, 0.3),
    'logo': (0.5, 0.2),
    'personality': 0.3,
}

HEX_PATTERN = re.compile(r'#([0-9a-fA-F]{8}|[0-9a-fA-F]{6}|[0-9a-fA-F]{4}|[0-9a-fA-F]{3})(?![0-9a-zA-Z_-])')
RGB_PATTERN = re.compile(r'rgba?\(\s*(\d{1,3})\s*[,\s]\s*(\d{1,3})\s*[,\s]\s*(\d{1,3})', re.IGNORECASE)
DECLARATION_PATTERN = re.compile(r'[\w-]+\s*:\s*([^;{}]+)')
RULE_PATTERN = re.compile(r'([^{}]+)\{([^{}]*)\}')
CSS_VARIABLE_PATTERN = re.compile(
    r'--[\w-]+\s*:\s*(#[0-9a-fA-F]{3,8}\b|rgba?\([^)]*\))', re.IGNORECASE
)
GRADIENT_START_PATTERN = re.compile(r'(?:repeating-)?(?:linear|radial|conic)-gradient\(', re.IGNORECASE)
FONT_FAMILY_PATTERN = re.compile(r'font-family\s*:\s*([^;{}]+)', re.IGNORECASE)
JS_COLOR_PATTERN = re.compile(
    r'["\'](#[0-9a-fA-F]{6}|#[0-9a-fA-F]{3}|rgba?\([^)"\']*\))["\']', re.IGNORECASE
)
TITLE_SUFFIX_PATTERN = re.compile(r'\s+[-–—|]\s+.*$|\s*\|.*$')
BRAND_SELECTOR_PATTERN = re.compile(
    r'[.#][\w-]*(?:' + '|'.join(BRAND_TOKENS) + r')', re.IGNORECASE
)


# ============================================================================
# URL RESOLUTION
# ============================================================================

def resolve_url(base_url: str, reference: str) -> str:
    """Turn a possibly relative reference into an absolute URL against ``base_url``."""
    reference = reference.strip()
    if reference.startswith('//'):
        scheme = urlparse(base_url).scheme or 'https'
        return f"{scheme}:{reference}"
    return urljoin(base_url, reference)


# ============================================================================
# COLOR PARSING
# ============================================================================

def _expand_hex(digits: str) -> str:
    if len(digits) in (3, 4):
        digits = ''.join(c * 2 for c in digits[:3])
    return f"#{digits[:6]}".upper()


def colors_in(text: str) -> Iterator[str]:
    """Yield every hex/rgb color in ``text`` as ``#RRGGBB``, in order of appearance."""
    found = []
    for match in HEX_PATTERN.finditer(text):
        found.append((match.start(), _expand_hex(match.group(1))))
    for match in RGB_PATTERN.finditer(text):
        r, g, b = (int(match.group(i)) for i in (1, 2, 3))
        if max(r, g, b) <= 255:
            found.append((match.start(), rgb_to_hex(r, g, b)))
    for _, color in sorted(found):
        yield color


def _declaration_values(css: str) -> Iterator[str]:
    for match in DECLARATION_PATTERN.finditer(css):
        yield match.group(1)


def _gradients(text: str) -> Iterator[str]:
    """Yield full gradient expressions, honouring nested parentheses."""
    for match in GRADIENT_START_PATTERN.finditer(text):
        depth = 1
        pos = match.end()
        while pos < len(text) and depth:
            if text[pos] == '(':
                depth += 1
            elif text[pos] == ')':
                depth -= 1
            pos += 1
        yield text[match.start():pos]


def _inline_styles(soup: BeautifulSoup) -> Iterator[str]:
    for element in soup.find_all(style=True):
        yield element.get('style', '')


def _has_brand_token(element) -> bool:
    classes = element.get('class') or []
    if isinstance(classes, str):
        classes = classes.split()
    names = ' '.join(classes + [element.get('id') or '']).lower()
    return any(token in names for token in BRAND_TOKENS)


# ============================================================================
# COLOR SCANS
# ============================================================================
# Each scan takes (soup, stylesheet_text) and yields hex colors.

def scan_css_literals(soup: BeautifulSoup, css: str) -> Iterator[str]:
    for value in _declaration_values(css):
        yield from colors_in(value)


def scan_css_variables(soup: BeautifulSoup, css: str) -> Iterator[str]:
    sources = [css, *_inline_styles(soup)]
    for text in sources:
        for match in CSS_VARIABLE_PATTERN.finditer(text):
            yield from colors_in(match.group(1))


def scan_inline_styles(soup: BeautifulSoup, css: str) -> Iterator[str]:
    for style in _inline_styles(soup):
        yield from colors_in(style)


def scan_brand_elements(soup: BeautifulSoup, css: str) -> Iterator[str]:
    # CSS rules whose selector names a brand-ish class or id
    for match in RULE_PATTERN.finditer(css):
        selector, block = match.group(1), match.group(2)
        if BRAND_SELECTOR_PATTERN.search(selector):
            yield from colors_in(block)

    # Elements carrying a brand-ish class or id, and header/nav landmarks
    for element in soup.find_all(True):
        if element.name in ('header', 'nav') or _has_brand_token(element):
            style = element.get('style')
            if style:
                yield from colors_in(style)
            for attr in ('fill', 'stroke', 'color', 'bgcolor'):
                value = element.get(attr)
                if isinstance(value, str):
                    yield from colors_in(value)


def scan_svg_attributes(soup: BeautifulSoup, css: str) -> Iterator[str]:
    for attr in ('fill', 'stroke'):
        for element in soup.find_all(attrs={attr: True}):
            value = element.get(attr)
            if isinstance(value, str):
                yield from colors_in(value)


def scan_gradients(soup: BeautifulSoup, css: str) -> Iterator[str]:
    for text in [css, *_inline_styles(soup)]:
        for gradient in _gradients(text):
            yield from colors_in(gradient)


def scan_css_in_js(soup: BeautifulSoup, css: str) -> Iterator[str]:
    for script in soup.find_all('script'):
        body = script.string or ''
        for match in JS_COLOR_PATTERN.finditer(body):
            yield from colors_in(match.group(1))


ColorScan = Callable[[BeautifulSoup, str], Iterable[str]]

COLOR_SCANS: List[Tuple[str, ColorScan]] = [
    ('brand-element', scan_brand_elements),
    ('css-variable', scan_css_variables),
    ('css-literal', scan_css_literals),
    ('inline-style', scan_inline_styles),
    ('svg', scan_svg_attributes),
    ('gradient', scan_gradients),
    ('css-in-js', scan_css_in_js),
]


def extract_color_candidates(
    html: str,
    stylesheet_text: str = '',
    soup: Optional[BeautifulSoup] = None,
    scans: Optional[List[Tuple[str, ColorScan]]] = None,
) -> List[ColorCandidate]:
    """Run every scan and merge the hits into deduplicated candidates.

    A color keeps the tag of the first scan that found it; its frequency is
    the total number of hits across all scans.
    """
    if soup is None:
        soup = BeautifulSoup(html or '', 'html.parser')

    counts: Dict[str, int] = {}
    tags: Dict[str, str] = {}
    for tag, scan in scans or COLOR_SCANS:
        for hex_color in scan(soup, stylesheet_text or ''):
            counts[hex_color] = counts.get(hex_color, 0) + 1
            tags.setdefault(hex_color, tag)

    return [
        ColorCandidate(hex=hex_color, hsl=hex_to_hsl(hex_color), frequency=count, source_tag=tags[hex_color])
        for hex_color, count in counts.items()
    ]


# ============================================================================
# NAME / LOGO / FONT
# ============================================================================

def _accept_name(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    text = ' '.join(text.split())
    if 0 < len(text) < MAX_NAME_LENGTH:
        return text
    return None


def extract_brand_name(html: str, soup: Optional[BeautifulSoup] = None) -> str:
    """Title (without " - tagline" / " | tagline"), then first h1, then meta title."""
    if soup is None:
        soup = BeautifulSoup(html or '', 'html.parser')

    title = soup.find('title')
    if title:
        name = _accept_name(TITLE_SUFFIX_PATTERN.sub('', title.get_text().strip()))
        if name:
            return name

    h1 = soup.find('h1')
    if h1:
        name = _accept_name(h1.get_text(' ', strip=True))
        if name:
            return name

    meta_title = soup.find('meta', attrs={'name': re.compile(r'^title$', re.I)})
    if meta_title:
        name = _accept_name(meta_title.get('content', ''))
        if name:
            return name

    return PLACEHOLDER_BRAND_NAME


def extract_logo_url(html: str, base_url: str, soup: Optional[BeautifulSoup] = None) -> Optional[str]:
    """First src containing "logo", then src containing "brand", then href containing "logo", then an icon link."""
    if soup is None:
        soup = BeautifulSoup(html or '', 'html.parser')

    def usable(value) -> bool:
        return isinstance(value, str) and value.strip() and not value.strip().startswith(('data:', 'javascript:', '#'))

    searches = [
        ('src', re.compile(r'logo', re.I)),
        ('src', re.compile(r'brand', re.I)),
        ('href', re.compile(r'logo', re.I)),
    ]
    for attr, pattern in searches:
        for element in soup.find_all(attrs={attr: pattern}):
            value = element.get(attr)
            if usable(value):
                return resolve_url(base_url, value)

    for link in soup.find_all('link', href=True):
        rel = link.get('rel') or []
        if isinstance(rel, str):
            rel = rel.split()
        if 'icon' in [r.lower() for r in rel] and usable(link.get('href')):
            return resolve_url(base_url, link['href'])

    return None


def _first_face(declaration: str) -> Optional[str]:
    value = declaration.replace('!important', '').strip()
    first = value.split(',')[0].strip().strip('"\'').strip()
    if not first or first.lower() in GENERIC_FONT_FAMILIES or first.lower().startswith('var('):
        return None
    return first


def extract_font_family(stylesheet_text: str, html: str = '', soup: Optional[BeautifulSoup] = None) -> str:
    """First font-family declaration whose leading face is not a generic family."""
    for match in FONT_FAMILY_PATTERN.finditer(stylesheet_text or ''):
        face = _first_face(match.group(1))
        if face:
            return face

    if html:
        if soup is None:
            soup = BeautifulSoup(html, 'html.parser')
        for style in _inline_styles(soup):
            for match in FONT_FAMILY_PATTERN.finditer(style):
                face = _first_face(match.group(1))
                if face:
                    return face

    return DEFAULT_FONT_FAMILY


# ============================================================================
# PROFILE
# ============================================================================

class HeuristicExtractor:
    """Builds a complete, low-confidence brand profile from a captured document."""

    def __init__(self, scans: Optional[List[Tuple[str, ColorScan]]] = None):
        self.scans = scans or COLOR_SCANS

    def extract(self, document: CapturedDocument) -> BrandProfile:
        soup = BeautifulSoup(document.html or '', 'html.parser')

        name = extract_brand_name(document.html, soup=soup)
        logo_url = extract_logo_url(document.html, document.url, soup=soup)
        font_family = extract_font_family(document.stylesheet_text, document.html, soup=soup)
        candidates = extract_color_candidates(document.html, document.stylesheet_text, soup=soup, scans=self.scans)
        triad = select_brand_colors(candidates)
        personality = derive_personality(document.html, triad.primary)

        logger.info(
            f"Heuristic extraction: name={name!r}, font={font_family!r}, "
            f"logo={'yes' if logo_url else 'no'}, {len(candidates)} color candidates -> "
            f"{triad.primary}/{triad.secondary}/{triad.accent}"
        )
        logger.debug(
            "Top candidates: "
            + ', '.join(f"{c.hex}x{c.frequency}({c.source_tag})" for c in sorted(candidates, key=lambda c: -c.frequency)[:10])
        )

        confidence = ConfidenceScores(
            name=_pick(HEURISTIC_CONFIDENCE['name'], name != PLACEHOLDER_BRAND_NAME),
            colors=_pick(HEURISTIC_CONFIDENCE['colors'], triad != DEFAULT_TRIAD),
            typography=_pick(HEURISTIC_CONFIDENCE['typography'], font_family != DEFAULT_FONT_FAMILY),
            logo=_pick(HEURISTIC_CONFIDENCE['logo'], logo_url is not None),
            personality=HEURISTIC_CONFIDENCE['personality'],
            overall=0.0,
        )
        confidence.overall = confidence.mean()

        return BrandProfile(
            name=name,
            primary_color=triad.primary,
            secondary_color=triad.secondary,
            accent_color=triad.accent,
            font_family=font_family,
            logo_url=logo_url,
            personality=personality,
            confidence=confidence,
        )


def _pick(pair: Tuple[float, float], found: bool) -> float:
    return pair[0] if found else pair[1]
