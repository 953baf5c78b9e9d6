from __future__ import annotations

import base64
import io

import numpy as np
from PIL import Image

from common.types import Grid
from common.utils import clamp, round_half_up
from raster.colors import ColorFn, try_parse_color, value_to_color


def opacity_to_alpha(opacity: float) -> int:
    """Opacity in [0, 1] -> alpha byte (out-of-range opacities saturate)."""
    return round_half_up(clamp(opacity, 0.0, 1.0) * 255)


def rasterize(
    grid: Grid,
    min_value: float,
    max_value: float,
    color_fn: ColorFn,
    opacity: float = 0.8,
) -> np.ndarray:
    """
    Color a Grid into an RGBA8 buffer of shape (rows, cols, 4).

    Pixel (row, col) is cell (row, col). Masked-out cells stay (0, 0, 0, 0).
    Inside cells take their RGB from `color_fn` (value clamped to the display
    domain) and a uniform alpha from `opacity`; the color string's own alpha
    is ignored, so "rgba(0, 0, 0, 0)" still paints black at `opacity`. A
    color string that does not parse leaves the pixel transparent.
    """
    pixels = np.zeros((grid.rows, grid.cols, 4), dtype=np.uint8)
    alpha = opacity_to_alpha(opacity)
    for row, col in zip(*np.nonzero(grid.mask)):
        color = value_to_color(float(grid.values[row, col]), min_value, max_value, color_fn)
        rgba = try_parse_color(color)
        if rgba is None:
            continue
        r, g, b, _ = rgba
        pixels[row, col] = (r, g, b, alpha)
    return pixels


def encode_png(pixels: np.ndarray) -> bytes:
    """PNG bytes for an (H, W, 4) uint8 buffer."""
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValueError("pixels must be (H, W, 4)")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ValueError("cannot encode an empty raster")
    buf = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
