"""
Run store: create / read / status updates for scoring runs.

update_run_status() only overwrites the optional columns that are passed in
(None keeps the stored value). Terminal statuses stamp completed_at.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from siteiq.config import STATUS_QUEUED, STATUS_RUNNING, RUN_STATUSES, TERMINAL_STATUSES
from siteiq.database import get_session
from siteiq.errors import InvalidArgumentError, StoreError
from siteiq.models.scoring_run import ScoringRun

logger = logging.getLogger('services.runs')


class RunStore:
    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def create_run(self, run: ScoringRun) -> ScoringRun:
        """Persist a new run in `queued` state. Assigns an id if it has none."""
        if not run.id:
            run.id = str(uuid.uuid4())
        if not run.status:
            run.status = STATUS_QUEUED
        if run.attempt_count is None:
            run.attempt_count = 0

        session = self._session_factory()
        try:
            session.add(run)
            session.commit()
            session.refresh(run)
            logger.info("Created run %s for input set %s", run.id, run.input_set_id,
                        extra={'run_id': run.id, 'tenant_id': run.tenant_id})
            return run
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to create run: {e}") from e
        finally:
            session.close()

    def get_run(self, tenant_id: str, run_id: str) -> Optional[ScoringRun]:
        """Tenant-scoped lookup. Returns None if the run is absent or owned by another tenant."""
        session = self._session_factory()
        try:
            return (
                session.query(ScoringRun)
                .filter(ScoringRun.id == run_id, ScoringRun.tenant_id == tenant_id)
                .one_or_none()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"failed to get run {run_id}: {e}") from e
        finally:
            session.close()

    def update_run_status(self, run_id: str, status: str, scored_count: Optional[int] = None,
                          last_error: Optional[str] = None, duration_ms: Optional[int] = None):
        if status not in RUN_STATUSES:
            raise InvalidArgumentError(f"unknown run status: {status!r}")

        now = datetime.now(timezone.utc)
        values = {'status': status, 'updated_at': now}
        if scored_count is not None:
            values['scored_count'] = scored_count
        if last_error is not None:
            values['last_error'] = last_error
        if duration_ms is not None:
            values['duration_ms'] = duration_ms
        if status == STATUS_RUNNING:
            values['started_at'] = now
        if status in TERMINAL_STATUSES:
            values['completed_at'] = now

        session = self._session_factory()
        try:
            result = session.execute(
                update(ScoringRun).where(ScoringRun.id == run_id).values(**values)
            )
            if result.rowcount == 0:
                session.rollback()
                raise StoreError(f"run {run_id} not found")
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to update run {run_id} status: {e}") from e
        finally:
            session.close()

    def increment_attempt(self, run_id: str):
        session = self._session_factory()
        try:
            result = session.execute(
                update(ScoringRun)
                .where(ScoringRun.id == run_id)
                .values(attempt_count=ScoringRun.attempt_count + 1,
                        updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount == 0:
                session.rollback()
                raise StoreError(f"run {run_id} not found")
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to increment attempt for run {run_id}: {e}") from e
        finally:
            session.close()

    def attach_snapshot(self, run_id: str, snapshot_id: str):
        """Record the schema snapshot a run is scored against."""
        session = self._session_factory()
        try:
            session.execute(
                update(ScoringRun)
                .where(ScoringRun.id == run_id)
                .values(schema_config_snapshot_id=snapshot_id,
                        updated_at=datetime.now(timezone.utc))
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to attach snapshot to run {run_id}: {e}") from e
        finally:
            session.close()
