from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence, Tuple
import math
import numpy as np

if TYPE_CHECKING:
    from common.types import BoundaryGeometry


# -------------------------
# Distances
# -------------------------
def degree_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Euclidean distance in degree space.

    Good enough for country-sized extents near the equator; not geodesic.
    """
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    return math.sqrt(dlat * dlat + dlon * dlon)


# -------------------------
# Containment (ray casting)
# -------------------------
def ring_bbox(ring: np.ndarray) -> Tuple[float, float, float, float]:
    """[lon_min, lat_min, lon_max, lat_max] of a (N, 2) ring; empty ring -> inverted inf box."""
    if ring.shape[0] == 0:
        return (math.inf, math.inf, -math.inf, -math.inf)
    lon_min, lat_min = ring.min(axis=0)
    lon_max, lat_max = ring.max(axis=0)
    return (float(lon_min), float(lat_min), float(lon_max), float(lat_max))


def point_in_ring(lon: float, lat: float, ring: np.ndarray | Sequence[Sequence[float]]) -> bool:
    """
    Even-odd ray casting against one closed ring of (lon, lat) vertices.

    Edge (i, j=i-1) counts as a crossing when it straddles `lat` and the
    crossing lies east of `lon`. Points exactly on an edge are not special-cased.
    """
    pts = np.asarray(ring, dtype=float)
    if pts.ndim != 2 or pts.shape[0] < 3:
        return False
    xi, yi = pts[:, 0], pts[:, 1]
    xj, yj = np.roll(xi, 1), np.roll(yi, 1)
    straddles = (yi > lat) != (yj > lat)
    # horizontal edges divide by zero but never straddle
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
    crossings = int(np.count_nonzero(straddles & (lon < x_cross)))
    return crossings % 2 == 1


def point_in_polygon(lon: float, lat: float, rings: Sequence[np.ndarray]) -> bool:
    """Inside ring 0 and outside every hole ring."""
    if not rings or not point_in_ring(lon, lat, rings[0]):
        return False
    for hole in rings[1:]:
        if point_in_ring(lon, lat, hole):
            return False
    return True


def point_in_boundary(lon: float, lat: float, geometries: Iterable["BoundaryGeometry"]) -> bool:
    """
    True if (lon, lat) falls inside any polygon of any geometry.

    Each polygon is pre-filtered by its outer-ring bounding box before the
    ray cast; the answer is the same as without the pre-check.
    """
    for geometry in geometries:
        if geometry.contains(lon, lat):
            return True
    return False
