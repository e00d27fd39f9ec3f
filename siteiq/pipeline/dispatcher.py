"""
Run dispatcher: fire-and-forget execution of scoring runs on a thread pool.

submit() returns as soon as the run is queued on the pool; callers poll the
run's status through the run store. Each run gets its own cancel event,
which the pipeline's backoff wait observes.
"""
import functools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List

from siteiq.errors import RunCancelledError, RunFailedError
from siteiq.models.scoring_run import ScoringRun

logger = logging.getLogger('pipeline.dispatcher')


class RunDispatcher:
    def __init__(self, pipeline, run_store, max_workers: int = 4):
        self.pipeline = pipeline
        self.run_store = run_store
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='scoring-run')
        self._cancel_events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def submit(self, run: ScoringRun) -> str:
        """Queue `run` for execution and return its id without waiting."""
        event = threading.Event()
        with self._lock:
            self._cancel_events[run.id] = event

        future = self._executor.submit(self._work, run.tenant_id, run.id, event)
        future.add_done_callback(functools.partial(self._on_done, run.id))
        logger.info("Dispatched run %s", run.id, extra={'run_id': run.id, 'tenant_id': run.tenant_id})
        return run.id

    def cancel(self, run_id: str) -> bool:
        """Signal a run to stop retrying. Returns False if it is not in flight."""
        with self._lock:
            event = self._cancel_events.get(run_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for run %s", run_id, extra={'run_id': run_id})
        return True

    def active_runs(self) -> List[str]:
        with self._lock:
            return list(self._cancel_events)

    def shutdown(self, wait: bool = True, cancel_pending: bool = True):
        """Stop the pool. With cancel_pending, queued runs never start and backoffs end early."""
        # Queued runs are cancelled before in-flight runs are signalled
        self._executor.shutdown(wait=False, cancel_futures=cancel_pending)
        if cancel_pending:
            with self._lock:
                events = list(self._cancel_events.values())
            for event in events:
                event.set()
        if wait:
            self._executor.shutdown(wait=True)

    # ── Worker side ───────────────────────────────────────────────────────────

    def _work(self, tenant_id: str, run_id: str, cancel_event: threading.Event):
        run = self.run_store.get_run(tenant_id, run_id)
        if run is None:
            logger.error("Run %s not found; nothing to execute", run_id, extra={'run_id': run_id})
            return None
        return self.pipeline.execute_with_retry(run, cancel_event=cancel_event)

    def _on_done(self, run_id: str, future: Future):
        with self._lock:
            self._cancel_events.pop(run_id, None)

        if future.cancelled():
            logger.info("Run %s was cancelled before it started", run_id, extra={'run_id': run_id})
            return

        error = future.exception()
        if error is None:
            return
        if isinstance(error, RunCancelledError):
            logger.info("Run %s stopped retrying after cancellation", run_id, extra={'run_id': run_id})
        elif isinstance(error, RunFailedError):
            logger.error("Run %s failed: %s", run_id, error, extra={'run_id': run_id})
        else:
            logger.error("Run %s crashed", run_id, exc_info=error, extra={'run_id': run_id})
