"""
ScoredResult model: one ranked, explained record per run (the evidence trail).
"""
from sqlalchemy import Column, Integer, Text, Float, DateTime, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func

from siteiq.database import Base


class ScoredResult(Base):
    __tablename__ = 'scored_results'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, ForeignKey('scoring_runs.id', ondelete='CASCADE'), nullable=False)
    tenant_id = Column(Text, nullable=False)
    record_id = Column(Text, nullable=False)
    ranking = Column(Integer, nullable=False)
    final_score = Column(Float, nullable=False)       # 0-100
    raw_score = Column(Float, nullable=True)
    explanation = Column(JSON, default=dict)          # {factors: [...], summary}
    extra = Column(JSON, default=dict)                # {model_version, ...}
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('run_id', 'record_id', name='uq_scored_result_run_record'),
        Index('ix_scored_results_run_ranking', 'run_id', 'ranking'),
    )

    def to_dict(self):
        return {
            'rank': self.ranking,
            'record_id': self.record_id,
            'final_score': self.final_score,
            'raw_score': self.raw_score,
            'explanation': self.explanation or {},
        }
