from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from common.logging_setup import get_logger
from common.types import BoundaryGeometry, ComputeRequest, ComputeResult, Grid, as_samples
from orchestrator.worker import RESULT, GridWorker


log = get_logger("orchestrator.submitter")


class SubmitterState(str, Enum):
    IDLE = "idle"
    REQUEST_SENT = "request_sent"


@dataclass(frozen=True, slots=True)
class ComputeTicket:
    """Handle for one submission; stale as soon as a newer request is issued."""
    request_id: int
    _submitter: "OverlaySubmitter" = field(repr=False, compare=False)

    @property
    def is_current(self) -> bool:
        return self._submitter.latest_id == self.request_id


class OverlaySubmitter:
    """
    Caller side of the compute protocol: last request wins.

    Every submit mints a new, strictly increasing request id and posts a
    compute message without waiting. Only a result carrying the latest id is
    accepted; anything older is dropped on arrival, while the superseded
    computation itself still runs to completion in the worker.

    State: IDLE -> REQUEST_SENT on submit, back to IDLE when the matching
    result arrives. `handle_result` runs on the worker thread, so state is
    guarded by a lock; `on_grid` is called outside it.
    """

    def __init__(
        self,
        post: Callable[[Dict[str, Any]], None],
        on_grid: Optional[Callable[[Optional[Grid]], None]] = None,
    ):
        self._post = post
        self.on_grid = on_grid
        self._lock = threading.Lock()
        self._latest_id = 0
        self._state = SubmitterState.IDLE
        self._grid: Optional[Grid] = None
        self.discarded = 0

    # -------- public API --------

    @property
    def latest_id(self) -> int:
        return self._latest_id

    @property
    def state(self) -> SubmitterState:
        return self._state

    @property
    def grid(self) -> Optional[Grid]:
        """Most recently accepted grid (None before the first result or after clearing)."""
        return self._grid

    def submit(
        self,
        samples: Iterable[Any],
        resolution: float = 0.1,
        idw_power: float = 2.0,
        boundary: Optional[Iterable[BoundaryGeometry]] = None,
    ) -> Optional[ComputeTicket]:
        """
        Post a compute request and return its ticket.

        With no samples nothing is sent: the accepted grid is cleared, any
        in-flight request is superseded, and None is returned.
        """
        samples = as_samples(samples)
        if not samples:
            with self._lock:
                self._latest_id += 1
                self._state = SubmitterState.IDLE
                self._grid = None
            self._notify(None)
            return None

        with self._lock:
            self._latest_id += 1
            request_id = self._latest_id
            self._state = SubmitterState.REQUEST_SENT
        request = ComputeRequest(
            request_id=request_id,
            samples=samples,
            resolution=resolution,
            idw_power=idw_power,
            boundary=tuple(boundary) if boundary is not None else None,
        )
        self._post(request.to_message())
        log.debug("Request sent", extra={"extra": {"id": request_id, "samples": len(samples)}})
        return ComputeTicket(request_id=request_id, _submitter=self)

    def cancel(self) -> bool:
        """Supersede the outstanding request (no message to the worker). False if idle."""
        with self._lock:
            if self._state is not SubmitterState.REQUEST_SENT:
                return False
            self._latest_id += 1
            self._state = SubmitterState.IDLE
        return True

    def handle_result(self, message: Mapping[str, Any]) -> bool:
        """Accept a result message if it answers the latest request; True if accepted."""
        if not isinstance(message, Mapping) or message.get("kind") != RESULT:
            return False
        result = ComputeResult.from_message(message)
        with self._lock:
            if result.request_id != self._latest_id or self._state is not SubmitterState.REQUEST_SENT:
                self.discarded += 1
                log.debug(
                    "Stale result discarded",
                    extra={"extra": {"id": result.request_id, "latest": self._latest_id}},
                )
                return False
            self._state = SubmitterState.IDLE
            self._grid = result.grid
        self._notify(result.grid)
        return True

    # -------- internals --------

    def _notify(self, grid: Optional[Grid]) -> None:
        if self.on_grid is not None:
            self.on_grid(grid)


def attach_submitter(
    worker: GridWorker,
    on_grid: Optional[Callable[[Optional[Grid]], None]] = None,
) -> OverlaySubmitter:
    """Wire a submitter to a worker: requests go to worker.post, results come back to the submitter."""
    submitter = OverlaySubmitter(worker.post, on_grid=on_grid)
    worker.on_message = submitter.handle_result
    return submitter
