"""
ScoringRun model: one execution unit of the scoring pipeline.

Created `queued` by the request layer; only the pipeline writes
running / succeeded / failed.
"""
from sqlalchemy import Column, Text, Integer, DateTime, JSON, Index
from sqlalchemy.sql import func

from siteiq.database import Base


class ScoringRun(Base):
    __tablename__ = 'scoring_runs'

    id = Column(Text, primary_key=True)
    tenant_id = Column(Text, nullable=False)
    input_set_id = Column(Text, nullable=False, index=True)
    status = Column(Text, nullable=False, default='queued')
    model_version = Column(Text, nullable=False)
    scoring_config = Column(JSON, nullable=True)
    schema_config_snapshot_id = Column(Text, nullable=True)
    row_count = Column(Integer, nullable=True)
    scored_count = Column(Integer, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    idempotency_key = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_scoring_runs_tenant_created', 'tenant_id', 'created_at'),
    )

    def to_dict(self):
        def _iso(dt):
            return dt.isoformat() if dt else None

        return {
            'run_id': self.id,
            'tenant_id': self.tenant_id,
            'input_set_id': self.input_set_id,
            'status': self.status,
            'model_version': self.model_version,
            'scoring_config': self.scoring_config,
            'schema_config_snapshot_id': self.schema_config_snapshot_id,
            'row_count': self.row_count,
            'scored_count': self.scored_count,
            'attempt_count': self.attempt_count or 0,
            'last_error': self.last_error,
            'duration_ms': self.duration_ms,
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
