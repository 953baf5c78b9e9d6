from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
import numpy as np

from common.types import Sample


# Samples closer than this (degrees) are returned as-is instead of weighted
EXACT_MATCH_DEG = 1e-4


@dataclass(frozen=True, slots=True)
class IDWOptions:
    """
    Attributes:
        power: distance exponent; weight = 1 / d**power.
        max_distance: search radius in degrees; 0/None disables the cutoff.
        min_points: fewer samples than this inside the radius -> use all samples.
    """
    power: float = 2.0
    max_distance: Optional[float] = 10.0
    min_points: int = 1


def sample_arrays(samples: Sequence[Sample]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split samples into (lats, lons, values) float arrays, preserving order."""
    n = len(samples)
    lats = np.fromiter((s.lat for s in samples), dtype=float, count=n)
    lons = np.fromiter((s.lon for s in samples), dtype=float, count=n)
    values = np.fromiter((s.value for s in samples), dtype=float, count=n)
    return lats, lons, values


def idw_at(
    target_lat: float,
    target_lon: float,
    lats: np.ndarray,
    lons: np.ndarray,
    values: np.ndarray,
    options: IDWOptions,
) -> float:
    """IDW estimate on pre-split sample arrays (see `interpolate`)."""
    if values.size == 0:
        return 0.0

    dlat = lats - target_lat
    dlon = lons - target_lon
    d = np.sqrt(dlat * dlat + dlon * dlon)

    near = np.flatnonzero(d < EXACT_MATCH_DEG)
    if near.size:
        return float(values[near[0]])

    if options.max_distance:
        used = d <= options.max_distance
        if np.count_nonzero(used) < options.min_points:
            used = np.ones_like(used)
    else:
        used = np.ones(d.shape, dtype=bool)

    w = 1.0 / d[used] ** options.power
    w_sum = float(w.sum())
    if not w_sum > 0:
        return 0.0
    # normalized weights: a single sample, or equal weights, reproduce values exactly
    return float(np.dot(w / w_sum, values[used]))


def interpolate(
    target_lat: float,
    target_lon: float,
    samples: Sequence[Sample],
    options: Optional[IDWOptions] = None,
) -> float:
    """
    Inverse-distance-weighted estimate at (target_lat, target_lon).

    - A sample within EXACT_MATCH_DEG of the target wins outright (first one in
      sample order).
    - Otherwise samples within `max_distance` are weighted by 1/d**power; if
      fewer than `min_points` qualify the cutoff is dropped and all samples
      are used.
    - No samples -> 0.0.

    Pure: same inputs, same output.
    """
    lats, lons, values = sample_arrays(samples)
    return idw_at(target_lat, target_lon, lats, lons, values, options or IDWOptions())
