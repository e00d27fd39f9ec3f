"""
Pipeline Manager: drives one scoring run from `queued` to a ranked result set.

One attempt (execute):
  mark running → resolve schema → snapshot → fetch records → score each
  record → rank → bulk insert → mark succeeded

execute_with_retry wraps attempts in exponential backoff with jitter. The
backoff wait is the only suspension point and it watches the run's cancel
event; cancellation stops retrying without touching the run's status.
"""
import json
import logging
import random
import threading
import time
from typing import Callable, List, Optional

from siteiq.config import PipelineConfig, STATUS_FAILED, STATUS_RUNNING, STATUS_SUCCEEDED
from siteiq.errors import (
    ConfigurationError, InvalidArgumentError, PartialRecordFailure,
    RunCancelledError, RunFailedError, StoreError,
)
from siteiq.models.scoring_run import ScoringRun
from siteiq.pipeline.schema import resolve_schema
from siteiq.pipeline.scoring import ScoredResult, rank_results, score_record

# Errors that will repeat on every attempt until an operator intervenes
NON_RETRYABLE_ERRORS = (ConfigurationError, InvalidArgumentError)

PROGRESS_EVERY = 100


class ScoringPipeline:
    """
    Orchestrates scoring runs against the run, record and config stores.

    All tunables come from the PipelineConfig handed in; the logger handle is
    explicit so callers can route pipeline logs wherever they like.
    """

    def __init__(self, run_store, record_store, config_store, config: Optional[PipelineConfig] = None,
                 logger: Optional[logging.Logger] = None,
                 score_func: Callable = score_record, resolver: Callable = resolve_schema):
        self.run_store = run_store
        self.record_store = record_store
        self.config_store = config_store
        self.config = config or PipelineConfig()
        self.score_func = score_func
        self.resolver = resolver
        self._logger = logger if logger is not None else logging.getLogger('pipeline.manager')

    # ── Logging helpers ───────────────────────────────────────────────────────

    def _log(self, run: ScoringRun, **context) -> logging.LoggerAdapter:
        extra = {'run_id': run.id, 'tenant_id': run.tenant_id}
        extra.update(context)
        return logging.LoggerAdapter(self._logger, extra)

    # ── One attempt ───────────────────────────────────────────────────────────

    def execute(self, run: ScoringRun, attempt: int = 1) -> List[ScoredResult]:
        """
        Run one full pipeline attempt and return the ranked results.

        Any step-level failure marks the run failed with last_error and is
        re-raised for the retry wrapper. Per-record failures are logged and
        skipped.
        """
        started = time.monotonic()
        step = 'update_status_running'
        log = self._log(run, attempt=attempt, step=step)

        try:
            log.info("Updating run status to running")
            self.run_store.update_run_status(run.id, STATUS_RUNNING)

            step = 'resolve_schema'
            log = self._log(run, attempt=attempt, step=step)
            global_config = self.config_store.get_active_global_config()
            if global_config is None:
                raise ConfigurationError("no active global schema configuration found")
            tenant_config = self.config_store.get_active_tenant_config(run.tenant_id)
            resolved = self.resolver(global_config.config,
                                     tenant_config.config if tenant_config is not None else None)
            log.info("Schema resolved with %d fields", len(resolved.fields))

            step = 'create_snapshot'
            log = self._log(run, attempt=attempt, step=step)
            snapshot = self.config_store.create_snapshot(
                run.id, global_config.id, resolved,
                input_set_id=run.input_set_id, raw_config=global_config.config,
            )
            self.run_store.attach_snapshot(run.id, snapshot.id)
            run.schema_config_snapshot_id = snapshot.id
            log.info("Snapshot %s created", snapshot.id)

            step = 'fetch_records'
            log = self._log(run, attempt=attempt, step=step)
            records = self.record_store.get_input_records(run.input_set_id)
            log.info("Fetched %d records", len(records))

            if not records:
                duration_ms = _elapsed_ms(started)
                self.run_store.update_run_status(run.id, STATUS_SUCCEEDED, scored_count=0,
                                                 duration_ms=duration_ms)
                log.info("Input set is empty; run succeeded with nothing to score")
                return []

            step = 'score_records'
            log = self._log(run, attempt=attempt, step=step)
            results = self._score_records(records, resolved, log)
            log.info("Scored %d of %d records", len(results), len(records))

            ranked = rank_results(results)

            step = 'bulk_insert_results'
            log = self._log(run, attempt=attempt, step=step)
            self.record_store.bulk_insert_results(run, ranked, batch_size=self.config.batch_size)
            log.info("Inserted %d results", len(ranked))

            step = 'update_status_succeeded'
            log = self._log(run, attempt=attempt, step=step)
            duration_ms = _elapsed_ms(started)
            self.run_store.update_run_status(run.id, STATUS_SUCCEEDED, scored_count=len(ranked),
                                             duration_ms=duration_ms)
            log.info("Run succeeded in %dms with %d scored records", duration_ms, len(ranked))
            return ranked

        except Exception as e:
            log.error("Step %s failed: %s", step, e)
            self._mark_failed(run, str(e), log)
            raise

    def _score_records(self, records, resolved, log) -> List[ScoredResult]:
        results = []
        seen = set()
        for i, record in enumerate(records, start=1):
            try:
                if record.record_id in seen:
                    raise PartialRecordFailure(record.record_id, 'duplicate record identifier')
                seen.add(record.record_id)
                results.append(self._score_one(record, resolved))
            except PartialRecordFailure as e:
                log.warning("%s", e)

            if i % PROGRESS_EVERY == 0:
                log.info("Scoring progress: %d/%d", i, len(records))
        return results

    def _score_one(self, record, resolved) -> ScoredResult:
        values = record.data
        if isinstance(values, (str, bytes)):
            try:
                values = json.loads(values)
            except ValueError as e:
                raise PartialRecordFailure(record.record_id, f'unparseable field data: {e}') from e
        if not isinstance(values, dict):
            raise PartialRecordFailure(record.record_id, 'field data is not a mapping')

        try:
            raw, final, explanation = self.score_func(values, resolved)
        except Exception as e:
            raise PartialRecordFailure(record.record_id, f'scoring failed: {e}') from e

        return ScoredResult(record_id=record.record_id, final_score=final,
                            raw_score=raw, explanation=explanation)

    def _mark_failed(self, run: ScoringRun, message: str, log):
        try:
            self.run_store.update_run_status(run.id, STATUS_FAILED, last_error=message)
        except StoreError as e:
            log.error("Failed to mark run failed: %s", e)

    # ── Retry wrapper ─────────────────────────────────────────────────────────

    def calculate_backoff(self, attempt: int) -> float:
        """Seconds to wait after zero-based `attempt` fails: base·2^n plus up to 10% jitter, capped."""
        exponential_ms = self.config.base_backoff_ms * (2 ** attempt)
        jitter_ms = random.uniform(0, exponential_ms * 0.1)
        return min(exponential_ms + jitter_ms, self.config.max_backoff_ms) / 1000.0

    def _is_retryable(self, error: Exception) -> bool:
        if isinstance(error, NON_RETRYABLE_ERRORS):
            return self.config.retry_configuration_errors
        return True

    def execute_with_retry(self, run: ScoringRun,
                           cancel_event: Optional[threading.Event] = None) -> List[ScoredResult]:
        """
        Run attempts until one succeeds or the retry budget runs out.

        Raises RunFailedError after the final failed attempt (the run is left
        `failed` with a composite message) and RunCancelledError when the
        cancel event fires.
        """
        cancel_event = cancel_event or threading.Event()
        max_attempts = self.config.max_retries + 1
        log = self._log(run)
        last_error = None
        attempts_made = 0

        for attempt in range(max_attempts):
            if cancel_event.is_set():
                log.info("Cancellation requested; not starting attempt %d", attempt + 1)
                raise RunCancelledError(run.id)

            log.info("Executing scoring pipeline (attempt %d/%d)", attempt + 1, max_attempts)
            try:
                self.run_store.increment_attempt(run.id)
            except StoreError as e:
                log.error("Failed to increment attempt counter: %s", e)

            attempts_made += 1
            try:
                return self.execute(run, attempt=attempt + 1)
            except Exception as e:
                last_error = e
                log.warning("Attempt %d failed: %s", attempt + 1, e)

            if not self._is_retryable(last_error):
                log.error("%s is not retryable; giving up", type(last_error).__name__)
                break
            if attempt + 1 >= max_attempts:
                break

            delay = self.calculate_backoff(attempt)
            log.info("Retrying in %.1fs (next attempt %d)", delay, attempt + 2)
            if cancel_event.wait(delay):
                log.info("Cancellation requested during backoff; stopping retries")
                raise RunCancelledError(run.id)

        message = f"scoring pipeline failed after {attempts_made} attempts: {last_error}"
        log.error("All retry attempts exhausted: %s", message)
        self._mark_failed(run, message, log)
        raise RunFailedError(run.id, message, attempts_made) from last_error


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
