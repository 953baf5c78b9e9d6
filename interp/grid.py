from __future__ import annotations

import math
import time
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from common.geo import point_in_boundary
from common.logging_setup import get_logger
from common.types import Bounds, BoundaryGeometry, Grid, Sample, parse_boundary
from common.utils import elapsed_ms
from interp.idw import IDWOptions, idw_at, sample_arrays


log = get_logger("interp.grid")


def grid_shape(bounds: Bounds, resolution: float) -> Tuple[int, int]:
    """(rows, cols) of the lattice; degenerate bounds give (0, 0)."""
    if bounds.is_degenerate:
        return (0, 0)
    cols = math.ceil((bounds.east - bounds.west) / resolution)
    rows = math.ceil((bounds.north - bounds.south) / resolution)
    return (rows, cols)


def cell_center(bounds: Bounds, resolution: float, row: int, col: int) -> Tuple[float, float]:
    """(lat, lon) of a cell center; origin at the north-west corner."""
    lat = bounds.north - row * resolution - resolution / 2
    lon = bounds.west + col * resolution + resolution / 2
    return lat, lon


def build_grid(
    bounds: Bounds,
    samples: Sequence[Sample],
    resolution: float,
    options: Optional[IDWOptions] = None,
    boundary: Optional[Iterable[BoundaryGeometry]] = None,
) -> Grid:
    """
    Sample the IDW estimator (and the boundary test, when given) at every cell
    center of a regular lattice over `bounds`.

    Cells run row-major, north to south then west to east. With no boundary
    every cell is unmasked; an empty boundary masks every cell. The Grid is
    constructed only after the last cell is filled in.
    """
    if not (math.isfinite(resolution) and resolution > 0):
        raise ValueError("resolution must be a finite number > 0")
    opts = options or IDWOptions()
    geometries = parse_boundary(boundary) if boundary is not None else None

    rows, cols = grid_shape(bounds, resolution)
    values = np.zeros((rows, cols), dtype=np.float64)
    mask = np.ones((rows, cols), dtype=bool)
    lats, lons, vals = sample_arrays(samples)

    t0 = time.perf_counter()
    for row in range(rows):
        for col in range(cols):
            lat, lon = cell_center(bounds, resolution, row, col)
            values[row, col] = idw_at(lat, lon, lats, lons, vals, opts)
            if geometries is not None:
                mask[row, col] = point_in_boundary(lon, lat, geometries)

    log.debug(
        "Grid built",
        extra={"extra": {"rows": rows, "cols": cols, "samples": len(samples), "ms": elapsed_ms(t0)}},
    )
    return Grid(values=values, mask=mask, bounds=bounds, resolution=resolution)
