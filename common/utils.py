from __future__ import annotations

import math
import time


def clamp(v: float, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, v)))


def round_half_up(x: float) -> int:
    """Half-up rounding: 76.5 -> 77 (builtin round() gives 76)."""
    return int(math.floor(x + 0.5))


def elapsed_ms(t0: float) -> int:
    """Milliseconds since a time.perf_counter() reading."""
    return int(1000.0 * (time.perf_counter() - t0))


def format_number(x: float) -> str:
    """Shortest text for a number; integral values drop the trailing '.0' (2.0 -> '2')."""
    f = float(x)
    if math.isfinite(f) and f.is_integer():
        return str(int(f))
    return repr(f)
