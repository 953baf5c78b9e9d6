"""
Compute context: the orchestrator that owns the grid cache, and the worker
thread that feeds it messages one at a time.

Protocol (plain dicts):
  request:  {"kind": "compute", "requestId", "samples", "resolution", "idwPower", "boundary"}
  response: {"kind": "result", "requestId", "grid"}
Any other kind is ignored.
"""

from __future__ import annotations

import dataclasses
import queue
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional

from common.logging_setup import get_logger
from common.types import GHANA_BOUNDS, Bounds, ComputeRequest, ComputeResult
from common.utils import elapsed_ms
from interp.grid import build_grid
from interp.idw import IDWOptions
from orchestrator.cache import DEFAULT_CAPACITY, GridCache, fingerprint


log = get_logger("orchestrator")

COMPUTE = "compute"
RESULT = "result"

Message = Mapping[str, Any]


class GridOrchestrator:
    """
    Lookup-then-compute over a private GridCache.

    Each instance owns its cache; two orchestrators never share one unless a
    cache is passed in explicitly. Not thread-safe: drive it from a single
    thread (GridWorker) or guard it with a lock.
    """

    def __init__(
        self,
        bounds: Bounds = GHANA_BOUNDS,
        cache: Optional[GridCache] = None,
        options: Optional[IDWOptions] = None,
        capacity: int = DEFAULT_CAPACITY,
    ):
        self.bounds = bounds
        self.cache = cache if cache is not None else GridCache(capacity)
        self.options = options or IDWOptions()

    def compute(self, request: ComputeRequest) -> ComputeResult:
        key = fingerprint(request.samples, request.resolution, request.idw_power)
        grid = self.cache.get(key)
        if grid is not None:
            log.debug("Grid cache hit", extra={"extra": {"id": request.request_id, "key": key}})
            return ComputeResult(request_id=request.request_id, grid=grid)

        t0 = time.perf_counter()
        grid = build_grid(
            self.bounds,
            request.samples,
            request.resolution,
            dataclasses.replace(self.options, power=request.idw_power),
            request.boundary,
        )
        evicted = self.cache.put(key, grid)
        log.info(
            "Grid computed",
            extra={"extra": {
                "id": request.request_id,
                "key": key,
                "rows": grid.rows,
                "cols": grid.cols,
                "latency_ms": elapsed_ms(t0),
                "evicted": evicted,
            }},
        )
        return ComputeResult(request_id=request.request_id, grid=grid)

    def handle(self, message: Message) -> Optional[Dict[str, Any]]:
        """Protocol entry point: a result dict for compute messages, None otherwise."""
        kind = message.get("kind") if isinstance(message, Mapping) else None
        if kind != COMPUTE:
            log.debug("Ignoring message", extra={"extra": {"kind": kind}})
            return None
        return self.compute(ComputeRequest.from_message(message)).to_message()


class GridWorker:
    """
    Background thread that processes posted messages strictly in receipt order.

    `post()` never blocks the caller. Each reply is handed to `on_message` on
    the worker thread as soon as it is ready.

    Usage:
        with GridWorker(GridOrchestrator(), on_message=print) as w:
            w.post(request.to_message())
    """

    def __init__(
        self,
        orchestrator: Optional[GridOrchestrator] = None,
        on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.orchestrator = orchestrator or GridOrchestrator()
        self.on_message = on_message
        self._inbox: "queue.Queue[Optional[Message]]" = queue.Queue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -------- public API --------

    def start(self) -> "GridWorker":
        """
        Start the thread. If a previous run is still finishing the message it
        was busy with when stop() timed out, wait for it first: only one
        thread ever drives the orchestrator.
        """
        if self._thread is not None and self._thread.is_alive():
            if not self._stop.is_set():
                return self
            self._thread.join()
        # each run gets its own event, so restarting cannot revive an old run
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(self._stop,), name="grid-worker", daemon=True)
        self._thread.start()
        return self

    def post(self, message: Message) -> None:
        self._inbox.put(message)

    def stop(self, timeout: float = 1.0) -> None:
        """
        Ask the thread to exit and wait up to `timeout`. A message already in
        progress is finished first; the handle is kept until the thread is gone.
        """
        self._stop.set()
        self._inbox.put(None)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._inbox.qsize()

    def __enter__(self) -> "GridWorker":
        return self.start()

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    # -------- internals --------

    def _run(self, stop: threading.Event) -> None:
        log.info("Grid worker started")
        while not stop.is_set():
            message = self._inbox.get()
            if stop.is_set():
                break
            if message is None:
                # wake-up left behind by an earlier stop()
                continue
            kind = message.get("kind") if isinstance(message, Mapping) else None
            try:
                reply = self.orchestrator.handle(message)
                if reply is not None and self.on_message is not None:
                    self.on_message(reply)
            except Exception:
                # One bad message must not take the worker down with it
                log.exception("Failed to process message", extra={"extra": {"kind": kind}})
        log.info("Grid worker stopped")
