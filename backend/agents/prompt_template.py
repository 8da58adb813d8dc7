"""Prompt template for screenshot-based brand extraction."""
from backend.agents.personality import (
    DESIGN_APPROACHES,
    INDUSTRY_CONTEXTS,
    PRIMARY_TRAITS,
    SECONDARY_TRAITS,
)

VISION_EXTRACTION_PROMPT = """You are an expert brand identity analyst. You are looking at a screenshot of the website {url}. Extract the brand identity shown in the image.

EXTRACTION INSTRUCTIONS:

1. NAME:
   - The company or product name as it appears in the logo or header
   - Clean name only (no taglines, no "|" or "-" suffixes)

2. COLORS (hex codes, format #RRGGBB):
   - primary_color: The dominant brand color (logo, primary buttons, calls to action, links)
   - secondary_color: A supporting brand color, often used for backgrounds or surfaces
   - accent_color: A highlight color used sparingly for emphasis
   - Ignore plain black, white and grays unless the brand is genuinely monochrome

3. TYPOGRAPHY:
   - font_family: The main heading/body font family as a single name (e.g. "Inter", "Roboto")

4. LOGO:
   - logo_url: An absolute URL for the logo only if you can read one; otherwise null

5. PERSONALITY (choose ONLY from these lists):
   - primary_trait: one of {primary_traits}
   - secondary_traits: up to 3 of {secondary_traits}
   - industry_context: one of {industry_contexts}
   - design_approach: one of {design_approaches}

CONFIDENCE GUIDELINES:
- Each score is between 0.0 and 1.0
- 0.9 or more: clearly visible and unambiguous
- 0.6 to 0.8: visible but partly inferred
- 0.3 to 0.5: mostly inferred from overall style
- Below 0.3: a guess
- overall should reflect the average of the other scores

Return ONLY valid JSON matching this structure:
{{
  "name": "",
  "primary_color": "#RRGGBB",
  "secondary_color": "#RRGGBB",
  "accent_color": "#RRGGBB",
  "font_family": "",
  "logo_url": null,
  "personality": {{
    "primary_trait": "",
    "secondary_traits": [],
    "industry_context": "",
    "design_approach": ""
  }},
  "confidence": {{
    "name": 0.0,
    "colors": 0.0,
    "typography": 0.0,
    "logo": 0.0,
    "personality": 0.0,
    "overall": 0.0
  }}
}}

CRITICAL: Return ONLY valid JSON. No markdown, no explanations. Just the JSON object.
"""


def build_vision_prompt(url: str) -> str:
    return VISION_EXTRACTION_PROMPT.format(
        url=url,
        primary_traits=", ".join(PRIMARY_TRAITS),
        secondary_traits=", ".join(SECONDARY_TRAITS),
        industry_contexts=", ".join(INDUSTRY_CONTEXTS),
        design_approaches=", ".join(DESIGN_APPROACHES),
    )
