"""
Raster: Grid -> RGBA8 overlay

- colors: color-string parsing, clamped value->color, legend stops
- rasterize: pixel buffer, PNG bytes, data URL
"""
from .colors import parse_color, try_parse_color, value_to_color
from .rasterize import rasterize, encode_png, to_data_url

__all__ = ["parse_color", "try_parse_color", "value_to_color", "rasterize", "encode_png", "to_data_url"]
