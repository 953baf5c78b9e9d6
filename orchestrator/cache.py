from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional, Sequence

from common.types import Grid, Sample
from common.utils import format_number


EMPTY_FINGERPRINT = "empty"
DEFAULT_CAPACITY = 20


def fingerprint(samples: Sequence[Sample], resolution: float, idw_power: float) -> str:
    """
    Cheap cache key: count, value sum, first/last value, resolution, power.

    NOT a content hash. Two different sample sets with the same count, sum
    (to 2 decimals) and end values collide and share a cached grid; that
    trade-off is accepted for speed on the submit path.
    """
    n = len(samples)
    if n == 0:
        return EMPTY_FINGERPRINT
    total = sum(s.value for s in samples)
    return (
        f"{n}-{total:.2f}-{samples[0].value:.4f}-{samples[-1].value:.4f}"
        f"-{format_number(resolution)}-{format_number(idw_power)}"
    )


class GridCache:
    """
    Bounded FIFO cache: fingerprint -> Grid.

    Eviction is by insertion order, not access recency: once more than
    `capacity` keys are stored, the single oldest-inserted key is dropped.
    Re-putting a stored key swaps the Grid but keeps its queue position.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._order: Deque[str] = deque()
        self._entries: Dict[str, Grid] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    # -------- public API --------

    def get(self, key: str) -> Optional[Grid]:
        grid = self._entries.get(key)
        if grid is None:
            self.misses += 1
        else:
            self.hits += 1
        return grid

    def put(self, key: str, grid: Grid) -> Optional[str]:
        """Store `grid`; returns the evicted key, if any."""
        if key in self._entries:
            self._entries[key] = grid
            return None
        self._order.append(key)
        self._entries[key] = grid
        if len(self._order) > self.capacity:
            oldest = self._order.popleft()
            del self._entries[oldest]
            self.evictions += 1
            return oldest
        return None

    def clear(self) -> None:
        self._order.clear()
        self._entries.clear()

    def keys(self) -> List[str]:
        """Keys oldest-first."""
        return list(self._order)

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._order),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
