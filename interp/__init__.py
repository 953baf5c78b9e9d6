"""
Interp: inverse-distance weighting over a regular lattice

- idw.interpolate: IDW estimate at one coordinate
- grid.build_grid: values + boundary mask for every cell of a bounding box
"""
from .idw import IDWOptions, interpolate
from .grid import build_grid

__all__ = ["IDWOptions", "interpolate", "build_grid"]
