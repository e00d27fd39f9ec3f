"""
Record store: input sets, their records, and scored results.

Results for a run are written in one transaction that first clears any rows
left by an earlier attempt, so a retried run never mixes stale and fresh rows.
"""
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError

from siteiq.database import get_session
from siteiq.errors import StoreError
from siteiq.models.input_set import InputSet, InputRecord
from siteiq.models.scored_result import ScoredResult as ScoredResultRow
from siteiq.models.scoring_run import ScoringRun
from siteiq.pipeline.scoring import ScoredResult

logger = logging.getLogger('services.records')


class RecordStore:
    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    # ── Input sets ────────────────────────────────────────────────────────────

    def create_input_set(self, input_set: InputSet, records: Sequence[InputRecord] = ()) -> InputSet:
        """Persist an input set and its records in one transaction."""
        session = self._session_factory()
        try:
            session.add(input_set)
            session.flush()
            for position, record in enumerate(records):
                record.input_set_id = input_set.id
                record.tenant_id = input_set.tenant_id
                record.position = position
            session.add_all(records)
            session.commit()
            session.refresh(input_set)
            logger.info("Stored input set %s with %d records", input_set.id, len(records),
                        extra={'tenant_id': input_set.tenant_id})
            return input_set
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to create input set: {e}") from e
        finally:
            session.close()

    def get_input_set(self, tenant_id: str, input_set_id: str) -> Optional[InputSet]:
        session = self._session_factory()
        try:
            return (
                session.query(InputSet)
                .filter(InputSet.id == input_set_id, InputSet.tenant_id == tenant_id)
                .one_or_none()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"failed to get input set {input_set_id}: {e}") from e
        finally:
            session.close()

    def get_input_records(self, input_set_id: str) -> List[InputRecord]:
        """All records of an input set in ingestion order."""
        session = self._session_factory()
        try:
            return (
                session.query(InputRecord)
                .filter(InputRecord.input_set_id == input_set_id)
                .order_by(InputRecord.position, InputRecord.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"failed to fetch records for input set {input_set_id}: {e}") from e
        finally:
            session.close()

    # ── Scored results ────────────────────────────────────────────────────────

    def bulk_insert_results(self, run: ScoringRun, results: Sequence[ScoredResult], batch_size: int = 1000):
        """Replace every result row of `run` with `results`, flushing in batches."""
        session = self._session_factory()
        try:
            session.execute(delete(ScoredResultRow).where(ScoredResultRow.run_id == run.id))

            batch = []
            for result in results:
                batch.append(ScoredResultRow(
                    run_id=run.id,
                    tenant_id=run.tenant_id,
                    record_id=result.record_id,
                    ranking=result.ranking,
                    final_score=result.final_score,
                    raw_score=result.raw_score,
                    explanation=result.explanation.to_dict(),
                    extra={'model_version': run.model_version, 'raw_score': result.raw_score},
                ))
                if len(batch) >= batch_size:
                    session.add_all(batch)
                    session.flush()
                    batch = []
            if batch:
                session.add_all(batch)

            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to insert results for run {run.id}: {e}") from e
        finally:
            session.close()

    def get_results(self, run_id: str, page: int = 1, page_size: int = 20,
                    min_score: Optional[float] = None) -> Tuple[List[ScoredResultRow], int]:
        """One page of a run's results ordered by ranking, plus the total match count."""
        session = self._session_factory()
        try:
            query = session.query(ScoredResultRow).filter(ScoredResultRow.run_id == run_id)
            if min_score is not None:
                query = query.filter(ScoredResultRow.final_score >= min_score)

            total = query.with_entities(func.count(ScoredResultRow.id)).scalar() or 0
            rows = (
                query.order_by(ScoredResultRow.ranking)
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
            return rows, total
        except SQLAlchemyError as e:
            raise StoreError(f"failed to fetch results for run {run_id}: {e}") from e
        finally:
            session.close()

    def get_result(self, run_id: str, record_id: str) -> Optional[ScoredResultRow]:
        session = self._session_factory()
        try:
            return (
                session.query(ScoredResultRow)
                .filter(ScoredResultRow.run_id == run_id, ScoredResultRow.record_id == record_id)
                .one_or_none()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"failed to fetch result {record_id} for run {run_id}: {e}") from e
        finally:
            session.close()
