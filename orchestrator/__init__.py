"""
Orchestrator: cached, off-thread grid computation

- cache: fingerprint() and the bounded FIFO GridCache
- worker: GridOrchestrator (lookup-then-compute) and GridWorker (sequential thread)
- submitter: OverlaySubmitter (request ids, last-request-wins result handling)

Usage:
    worker = GridWorker(GridOrchestrator()).start()
    submitter = attach_submitter(worker, on_grid=redraw)
    submitter.submit(samples, resolution=0.1, idw_power=2, boundary=geoms)
"""
from .cache import GridCache, fingerprint
from .worker import GridOrchestrator, GridWorker
from .submitter import ComputeTicket, OverlaySubmitter, SubmitterState, attach_submitter

__all__ = [
    "GridCache",
    "fingerprint",
    "GridOrchestrator",
    "GridWorker",
    "ComputeTicket",
    "OverlaySubmitter",
    "SubmitterState",
    "attach_submitter",
]
