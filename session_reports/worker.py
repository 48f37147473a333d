from __future__ import annotations  # Background report dispatch and stalled-report sweep

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Optional, Set

from observability import log_event
from storage.base import SessionStore

logger = logging.getLogger(__name__)  # Module logger setup


class ReportDispatcher:  # Bounded worker pool running report generation off the request path
    def __init__(
        self,
        generate: Callable[[str], Any],
        *,
        store: Optional[SessionStore] = None,
        max_workers: int = 2,
        sweep_interval_s: Optional[float] = None,
        sweep_batch: int = 10,
    ) -> None:
        self._generate = generate
        self._store = store
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="report")
        self._guard = threading.Lock()
        self._inflight: Dict[str, str] = {}  # session_id -> queued | running
        self._rerun: Set[str] = set()
        self._futures: Set[Future] = set()
        self._closed = False
        self._sweep_interval_s = sweep_interval_s
        self._sweep_batch = sweep_batch
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def dispatch(self, session_id: str) -> bool:  # Queue generation; False when already queued or running
        with self._guard:
            if self._closed:
                raise RuntimeError("Report dispatcher is shut down")
            state = self._inflight.get(session_id)
            if state == "running":
                self._rerun.add(session_id)
                return False
            if state == "queued":
                return False
            self._inflight[session_id] = "queued"
            future = self._executor.submit(self._run, session_id)
            self._futures.add(future)
        future.add_done_callback(self._forget)
        log_event("report_dispatched", session_id)
        return True

    def pending(self) -> int:  # Sessions queued or running
        with self._guard:
            return len(self._inflight)

    def join(self, timeout: Optional[float] = None) -> None:  # Block until every dispatched job has finished
        while True:
            with self._guard:
                futures = set(self._futures)
            if not futures:
                return
            done, not_done = wait(futures, timeout=timeout)
            if not_done:
                raise TimeoutError(f"{len(not_done)} report jobs still running")
            with self._guard:
                self._futures -= done

    def sweep_once(self) -> int:  # Dispatch reports stuck in analyzing without a result
        if self._store is None:
            return 0
        stalled = self._store.stalled_reports(limit=self._sweep_batch)
        dispatched = sum(1 for report in stalled if self.dispatch(report.session_id))
        if stalled:
            log_event("report_sweep", None, found=len(stalled), dispatched=dispatched)
        return dispatched

    def start(self) -> None:  # Launch the periodic sweeper when an interval is configured
        if self._sweep_interval_s is None or self._sweeper is not None:
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="report-sweeper", daemon=True)
        self._sweeper.start()
        logger.info("Report sweeper enabled (interval=%.1fs)", self._sweep_interval_s)

    def shutdown(self, wait_for_jobs: bool = True) -> None:  # Stop the sweeper and the worker pool
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
        with self._guard:
            self._closed = True
        self._executor.shutdown(wait=wait_for_jobs)

    def _run(self, session_id: str) -> None:
        while True:
            with self._guard:
                self._inflight[session_id] = "running"
            try:
                self._generate(session_id)
            except Exception:
                logger.exception("Report job failed for %s", session_id)
            with self._guard:
                if session_id in self._rerun:
                    self._rerun.discard(session_id)
                    continue
                self._inflight.pop(session_id, None)
                return

    def _forget(self, future: Future) -> None:
        with self._guard:
            self._futures.discard(future)

    def _sweep_loop(self) -> None:
        assert self._sweep_interval_s is not None
        while not self._stop.wait(self._sweep_interval_s):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Report sweep tick failed")


__all__ = ["ReportDispatcher"]
