"""
Palette transforms, the design-evolution prompt, and the on-device fallback.

The fallback keeps the design panel useful when Gemini is unreachable or
replies with something that does not fit the suggestion schema.
"""
import json
import math

from data_models import DesignProfile, DesignSuggestion


def _clamp(value: int, low: int = 0, high: int = 255) -> int:
    return min(max(value, low), high)


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    """
    Parses ``#RGB`` or ``#RRGGBB`` into channel values.

    Raises:
        ValueError: If the string is not a 3 or 6 digit hex color.
    """
    parsed = color.replace("#", "")
    if len(parsed) not in (3, 6):
        raise ValueError(f"Invalid hex color {color}")
    if len(parsed) == 3:
        parsed = "".join(char * 2 for char in parsed)
    value = int(parsed, 16)
    return (value >> 16) & 255, (value >> 8) & 255, value & 255


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{channel:02X}" for channel in (r, g, b))


def _scale(color: str, factor: float) -> str:
    try:
        r, g, b = hex_to_rgb(color)
    except ValueError:
        return color
    return rgb_to_hex(*(_clamp(math.floor(channel * factor + 0.5)) for channel in (r, g, b)))


def shade(color: str, factor: float) -> str:
    """Darkens a hex color by ``factor`` (< 1). Invalid colors pass through."""
    return _scale(color, factor)


def tint(color: str, factor: float) -> str:
    """Brightens a hex color by ``factor`` (> 1). Invalid colors pass through."""
    return _scale(color, factor)


def fallback_suggestion(profile: DesignProfile) -> DesignSuggestion:
    return DesignSuggestion.model_validate(
        {
            "summary": "Dial up the aurora energy with a cooler teal sweep and sculpted frosted surfaces.",
            "palette": {
                "primary": shade(profile.primary_color, 0.85),
                "accent": tint(profile.accent_color, 1.1),
                "background": (
                    "radial-gradient(circle at 10% -10%, rgba(91, 33, 182, 0.3), transparent 60%), "
                    "radial-gradient(circle at 80% 10%, rgba(0, 194, 255, 0.26), transparent 65%), #05010e"
                ),
                "surfaces": [
                    "rgba(12, 8, 35, 0.72)",
                    "rgba(15, 20, 48, 0.56)",
                    "rgba(69, 235, 255, 0.12)",
                ],
            },
            "layout": {"density": "balanced", "cornerStyle": "ultra-rounded", "shadowStyle": "vivid"},
            "enhancements": [
                "Introduce aurora threads animating subtly across the hero card.",
                "Edge-light primary buttons with a cyan core and soft magenta outer glow.",
                "Layer in micro-depth using parallax glass panels over the voice canvas.",
            ],
        }
    )


SUGGESTION_SCHEMA = """{
  "summary": "Quick story about the vibe shift.",
  "palette": {
    "primary": "<hex>",
    "accent": "<hex>",
    "background": "<css color or gradient>",
    "surfaces": ["<rgba or css color>", "..."]
  },
  "layout": {
    "density": "cozy | balanced | airy",
    "cornerStyle": "rounded | ultra-rounded | sharp",
    "shadowStyle": "soft | vivid | minimal"
  },
  "enhancements": ["<bullet 1>", "<bullet 2>", "<bullet 3>"]
}"""


def build_design_prompt(profile: DesignProfile) -> str:
    return "\n".join(
        [
            "You are an adaptive UI systems director for a mobile-first agentic console.",
            "Given the current design profile, output JSON describing the next evolution.",
            "",
            "Respond with JSON using the following schema:",
            SUGGESTION_SCHEMA,
            "",
            "Current design profile to evolve:",
            json.dumps(profile.to_wire(), indent=2),
            "",
            "Constraints:",
            "- Keep output as valid JSON only (no additional commentary).",
            "- Emphasize gradients and luminous glass surfaces for an agentic brand.",
        ]
    )
