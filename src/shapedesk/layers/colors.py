"""Per-layer display colours and the simple renderer built from them.

Colours come from the layer index: hue steps 60 degrees per layer at fixed
70% saturation / 50% lightness, so the first six layers are maximally
distinct and the sequence repeats after that.
"""

from __future__ import annotations

import math

SATURATION = 0.70
LIGHTNESS = 0.50


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


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def color_for_index(index: int) -> tuple[int, int, int]:
    """Return the (r, g, b) display colour for the layer with this index.

    Args:
        index: Layer index (the registry id).

    Returns:
        Three integers in 0..255.
    """
    h = ((index * 60) % 360) / 360
    s, l = SATURATION, LIGHTNESS

    q = l * (1 + s) if l < 0.5 else l + s - l * s
    p = 2 * l - q
    r = _hue_to_rgb(p, q, h + 1 / 3)
    g = _hue_to_rgb(p, q, h)
    b = _hue_to_rgb(p, q, h - 1 / 3)
    return (_round_half_up(r * 255), _round_half_up(g * 255), _round_half_up(b * 255))


def renderer_for(geometry_type: str, color: tuple[int, int, int]) -> dict:
    """Build the simple renderer for a layer of the given geometry kind.

    Points get a solid marker, lines a 2px stroke, polygons a translucent
    fill with a solid outline.
    """
    r, g, b = color
    if geometry_type == "point":
        symbol = {"type": "simple-marker", "color": [r, g, b], "size": "8px"}
    elif geometry_type == "polyline":
        symbol = {"type": "simple-line", "color": [r, g, b], "width": 2}
    else:
        symbol = {
            "type": "simple-fill",
            "color": [r, g, b, 0.3],
            "outline": {"color": [r, g, b, 1], "width": 2},
        }
    return {"type": "simple", "symbol": symbol}
