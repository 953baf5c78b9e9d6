from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.utils import clamp, round_half_up


RGBA = Tuple[int, int, int, int]
ColorFn = Callable[[float, float, float], str]

TRANSPARENT: RGBA = (0, 0, 0, 0)

_RGB_RE = re.compile(r"rgb\((\d+),\s*(\d+),\s*(\d+)\)")
_RGBA_RE = re.compile(r"rgba\((\d+),\s*(\d+),\s*(\d+),\s*([\d.]+)\)")
_HEX_RE = re.compile(r"#([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})", re.IGNORECASE)


def _channel(digits: str) -> int:
    # Byte channels saturate like a canvas buffer: rgb(300, ...) -> 255.
    # Long digit runs saturate without int(), which refuses very long strings.
    digits = digits.lstrip("0") or "0"
    if len(digits) > 3:
        return 255
    return int(clamp(int(digits), 0, 255))


def _alpha(text: str) -> int:
    return round_half_up(clamp(float(text), 0.0, 1.0) * 255)


def try_parse_color(color: Any) -> Optional[RGBA]:
    """
    Parse a CSS-ish color string into (r, g, b, a) bytes, or None if the
    string is not one of rgb(r, g, b), rgba(r, g, b, a) with a in [0, 1],
    or #rrggbb. Out-of-range numbers saturate. Never raises.
    """
    if not isinstance(color, str):
        return None

    m = _RGB_RE.search(color)
    if m:
        return (_channel(m.group(1)), _channel(m.group(2)), _channel(m.group(3)), 255)

    m = _RGBA_RE.search(color)
    if m:
        try:
            a = _alpha(m.group(4))
        except ValueError:  # e.g. "1.2.3"
            return None
        return (_channel(m.group(1)), _channel(m.group(2)), _channel(m.group(3)), a)

    m = _HEX_RE.fullmatch(color)
    if m:
        return (int(m.group(1), 16), int(m.group(2), 16), int(m.group(3), 16), 255)

    return None


def parse_color(color: Any) -> RGBA:
    """Like try_parse_color, but anything unrecognized is transparent black."""
    rgba = try_parse_color(color)
    return TRANSPARENT if rgba is None else rgba


def value_to_color(value: float, min_value: float, max_value: float, color_fn: ColorFn) -> str:
    """Clamp into [min_value, max_value] then ask the color function."""
    clamped = max(min_value, min(max_value, value))
    return color_fn(clamped, min_value, max_value)


def ramp_color_fn(start: str, end: str) -> ColorFn:
    """
    Two-stop linear color scale between hex colors, returning "rgb(r, g, b)".

    Minimal stand-in for the map's real color scales; a degenerate domain
    (max == min) maps everything to `start`.
    """
    r0, g0, b0, _ = parse_color(start)
    r1, g1, b1, _ = parse_color(end)

    def color(value: float, vmin: float, vmax: float) -> str:
        span = vmax - vmin
        t = 0.0 if span == 0 else clamp((value - vmin) / span, 0.0, 1.0)
        r = round_half_up(r0 + (r1 - r0) * t)
        g = round_half_up(g0 + (g1 - g0) * t)
        b = round_half_up(b0 + (b1 - b0) * t)
        return f"rgb({r}, {g}, {b})"

    return color


def legend_stops(min_value: float, max_value: float, color_fn: ColorFn, steps: int = 5) -> List[Dict[str, Any]]:
    """`steps + 1` evenly spaced legend entries; labels rounded to one decimal."""
    stops: List[Dict[str, Any]] = []
    for i in range(steps + 1):
        value = min_value + (max_value - min_value) * (i / steps)
        stops.append({
            "value": round_half_up(value * 10) / 10,
            "color": color_fn(value, min_value, max_value),
        })
    return stops
