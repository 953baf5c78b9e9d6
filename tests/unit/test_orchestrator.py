"""
Unit tests for the compute orchestrator, its worker thread, and the
last-request-wins submitter
"""

import threading
import time
import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import Bounds, ComputeRequest, ComputeResult, Sample
from interp.grid import build_grid
from orchestrator.cache import GridCache
from orchestrator.submitter import OverlaySubmitter, SubmitterState, attach_submitter
import orchestrator.worker as worker_module
from orchestrator.worker import GridOrchestrator, GridWorker

SMALL = Bounds(north=2.0, south=0.0, east=3.0, west=0.0)
SAMPLES_A = [Sample(0.5, 0.5, 10.0), Sample(1.5, 2.5, 20.0)]
SAMPLES_B = [Sample(0.5, 0.5, 40.0), Sample(1.5, 2.5, 50.0)]
WAIT = 5.0


def request(request_id, samples=SAMPLES_A, resolution=0.5, idw_power=2.0, boundary=None):
    return ComputeRequest(request_id, samples, resolution, idw_power, boundary)


def result_message(request_id, value):
    grid = build_grid(SMALL, [Sample(1.0, 1.0, value)], 1.0)
    return ComputeResult(request_id=request_id, grid=grid).to_message()


class TestGridOrchestrator:
    """Cache lookup then compute"""

    def test_miss_then_hit(self):
        """Test a repeated request is served from the cache by identity"""
        orch = GridOrchestrator(bounds=SMALL)
        first = orch.compute(request(1))
        second = orch.compute(request(2))
        assert second.grid is first.grid
        assert second.request_id == 2
        assert orch.cache.stats()["hits"] == 1
        assert orch.cache.stats()["misses"] == 1

    def test_computes_with_request_power(self):
        """Test the request's power reaches the interpolator"""
        orch = GridOrchestrator(bounds=SMALL)
        low = orch.compute(request(1, idw_power=1.0)).grid
        high = orch.compute(request(2, idw_power=4.0)).grid
        assert not np.array_equal(low.values, high.values)
        assert len(orch.cache) == 2

    def test_boundary_is_applied(self):
        """Test the request boundary drives the mask"""
        boundary = [{"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}]
        grid = GridOrchestrator(bounds=SMALL).compute(request(1, boundary=boundary)).grid
        assert grid.mask.sum() == 4
        assert grid.mask[3, 0] and grid.mask[2, 1]
        assert not grid.mask[0, 0]

    def test_separate_caches(self):
        """Test two orchestrators never share cached grids"""
        a = GridOrchestrator(bounds=SMALL)
        b = GridOrchestrator(bounds=SMALL)
        a.compute(request(1))
        assert len(a.cache) == 1
        assert len(b.cache) == 0

    def test_capacity_respected(self):
        """Test the orchestrator's cache stays within its capacity"""
        orch = GridOrchestrator(bounds=SMALL, cache=GridCache(capacity=2))
        for i in range(5):
            orch.compute(request(i + 1, samples=[Sample(1.0, 1.0, float(i))]))
        assert len(orch.cache) == 2

    def test_handle_protocol(self):
        """Test handle() answers compute messages and ignores everything else"""
        orch = GridOrchestrator(bounds=SMALL)
        reply = orch.handle(request(7).to_message())
        assert reply["kind"] == "result"
        assert reply["requestId"] == 7
        assert reply["grid"].values.shape == (4, 6)
        assert orch.handle({"kind": "ping"}) is None
        assert orch.handle({}) is None
        assert orch.handle("compute") is None

    def test_handle_accepts_plain_dicts(self):
        """Test samples may arrive as {lat, lon, value} mappings"""
        orch = GridOrchestrator(bounds=SMALL)
        msg = {
            "kind": "compute",
            "requestId": 3,
            "samples": [{"lat": 1.0, "lon": 1.0, "value": 12.0}],
            "resolution": 1.0,
            "idwPower": 2,
        }
        reply = orch.handle(msg)
        assert np.all(reply["grid"].values == 12.0)


class TestGridWorker:
    """Background message processing"""

    def test_replies_in_order(self):
        """Test replies come back in the order the requests were posted"""
        replies = []
        done = threading.Event()

        def on_message(msg):
            replies.append(msg["requestId"])
            if len(replies) == 3:
                done.set()

        with GridWorker(GridOrchestrator(bounds=SMALL), on_message=on_message) as worker:
            for i in (1, 2, 3):
                worker.post(request(i, samples=[Sample(1.0, 1.0, float(i))]).to_message())
            assert done.wait(WAIT)
        assert replies == [1, 2, 3]

    def test_survives_bad_message(self):
        """Test a malformed message is logged and the next one is still served"""
        replies = []
        done = threading.Event()

        def on_message(msg):
            replies.append(msg["requestId"])
            done.set()

        with GridWorker(GridOrchestrator(bounds=SMALL), on_message=on_message) as worker:
            worker.post({"kind": "compute"})
            worker.post({"kind": "noise"})
            worker.post(request(9).to_message())
            assert done.wait(WAIT)
            assert worker.is_alive
        assert replies == [9]

    def test_module_documents_protocol(self):
        """Test the worker module docstring (message protocol) is the real __doc__"""
        assert worker_module.__doc__ is not None
        assert "requestId" in worker_module.__doc__

    def test_stop(self):
        """Test stop() ends the thread"""
        worker = GridWorker(GridOrchestrator(bounds=SMALL)).start()
        assert worker.is_alive
        worker.stop()
        assert not worker.is_alive

    def test_restart_after_stop_timeout(self):
        """Test stop() timing out mid-message, then start(): the busy run finishes and exits, one thread serves on"""
        entered = threading.Event()
        release = threading.Event()

        class SlowOrchestrator(GridOrchestrator):
            def handle(self, message):
                entered.set()
                release.wait(WAIT)
                return super().handle(message)

        replies = []
        done = threading.Event()

        def on_message(msg):
            replies.append(msg["requestId"])
            if len(replies) == 2:
                done.set()

        worker = GridWorker(SlowOrchestrator(bounds=SMALL), on_message=on_message).start()
        worker.post(request(1).to_message())
        assert entered.wait(WAIT)

        worker.stop(timeout=0.05)
        old = worker._thread
        assert old is not None and old.is_alive()

        timer = threading.Timer(0.2, release.set)
        timer.start()
        worker.start()
        worker.start()
        assert not old.is_alive()
        assert worker._thread is not old

        worker.post(request(2).to_message())
        assert done.wait(WAIT)
        assert replies == [1, 2]
        alive = [t for t in threading.enumerate() if t.name == "grid-worker" and t.is_alive()]
        assert alive == [worker._thread]
        worker.stop()
        timer.join()
        assert not worker.is_alive


class TestOverlaySubmitter:
    """Last request wins"""

    def test_ids_strictly_increase(self):
        """Test each submit mints a larger id and posts it"""
        posted = []
        sub = OverlaySubmitter(posted.append)
        t1 = sub.submit(SAMPLES_A)
        t2 = sub.submit(SAMPLES_B)
        assert t2.request_id > t1.request_id
        assert [m["requestId"] for m in posted] == [t1.request_id, t2.request_id]
        assert posted[0]["kind"] == "compute"
        assert not t1.is_current
        assert t2.is_current

    def test_state_machine(self):
        """Test IDLE -> REQUEST_SENT -> IDLE"""
        sub = OverlaySubmitter(lambda m: None)
        assert sub.state is SubmitterState.IDLE
        ticket = sub.submit(SAMPLES_A)
        assert sub.state is SubmitterState.REQUEST_SENT
        assert sub.handle_result(result_message(ticket.request_id, 1.0))
        assert sub.state is SubmitterState.IDLE

    def test_out_of_order_results(self):
        """Test a late result for a superseded request never replaces the newer grid"""
        shown = []
        sub = OverlaySubmitter(lambda m: None, on_grid=shown.append)
        t1 = sub.submit(SAMPLES_A)
        t2 = sub.submit(SAMPLES_B)

        assert sub.handle_result(result_message(t2.request_id, 2.0))
        accepted = sub.grid
        assert not sub.handle_result(result_message(t1.request_id, 1.0))

        assert sub.grid is accepted
        assert np.all(sub.grid.values == 2.0)
        assert shown == [accepted]
        assert sub.discarded == 1

    def test_duplicate_result_discarded(self):
        """Test a second result for an already-answered id is dropped"""
        sub = OverlaySubmitter(lambda m: None)
        ticket = sub.submit(SAMPLES_A)
        assert sub.handle_result(result_message(ticket.request_id, 1.0))
        assert not sub.handle_result(result_message(ticket.request_id, 5.0))
        assert np.all(sub.grid.values == 1.0)

    def test_ignores_other_messages(self):
        """Test non-result messages are ignored without touching state"""
        sub = OverlaySubmitter(lambda m: None)
        sub.submit(SAMPLES_A)
        assert not sub.handle_result({"kind": "progress", "requestId": 1})
        assert not sub.handle_result("result")
        assert sub.state is SubmitterState.REQUEST_SENT
        assert sub.discarded == 0

    def test_zero_samples_short_circuit(self):
        """Test an empty submit clears the grid, sends nothing and supersedes in-flight work"""
        posted = []
        shown = []
        sub = OverlaySubmitter(posted.append, on_grid=shown.append)
        ticket = sub.submit(SAMPLES_A)
        assert sub.submit([]) is None
        assert len(posted) == 1
        assert sub.state is SubmitterState.IDLE
        assert sub.grid is None
        assert shown == [None]

        assert not sub.handle_result(result_message(ticket.request_id, 1.0))
        assert sub.grid is None

    def test_cancel(self):
        """Test cancel supersedes the outstanding request"""
        sub = OverlaySubmitter(lambda m: None)
        assert not sub.cancel()
        ticket = sub.submit(SAMPLES_A)
        assert sub.cancel()
        assert not ticket.is_current
        assert sub.state is SubmitterState.IDLE
        assert not sub.handle_result(result_message(ticket.request_id, 1.0))

    def test_with_worker(self):
        """Test two quick submits through a real worker: only the newer grid is shown"""
        shown = []
        done = threading.Event()

        def on_grid(grid):
            shown.append(grid)
            done.set()

        worker = GridWorker(GridOrchestrator(bounds=SMALL))
        sub = attach_submitter(worker, on_grid=on_grid)
        # both requests are queued before the thread picks up the first one
        sub.submit(SAMPLES_A, resolution=0.5)
        t2 = sub.submit(SAMPLES_B, resolution=0.5)
        with worker:
            assert done.wait(WAIT)
            # the superseded request still runs; wait until both are in the cache
            for _ in range(100):
                if len(worker.orchestrator.cache) == 2 and sub.discarded == 1:
                    break
                time.sleep(0.05)

        assert len(shown) == 1
        assert sub.grid is shown[0]
        assert sub.state is SubmitterState.IDLE
        assert t2.is_current
        assert float(shown[0].values.min()) >= 40.0
        assert sub.discarded == 1
