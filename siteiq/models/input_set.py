"""
InputSet + InputRecord models: one row per ingested record set and per record.

Record field values live in the open-ended `data` document; types are enforced
at resolution/scoring time, not by the store.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey, Index
from sqlalchemy.sql import func

from siteiq.database import Base


class InputSet(Base):
    __tablename__ = 'input_sets'

    id = Column(Text, primary_key=True)
    tenant_id = Column(Text, nullable=False, index=True)
    name = Column(Text, default='')
    validation_status = Column(Text, nullable=False, default='valid')
    row_count = Column(Integer, default=0)
    schema_version = Column(Text, nullable=True)
    warnings = Column(JSON, default=list)
    errors = Column(JSON, default=list)
    idempotency_key = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'input_set_id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'validation_status': self.validation_status,
            'row_count': self.row_count,
            'schema_version': self.schema_version,
            'warnings': self.warnings or [],
            'errors': self.errors or [],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class InputRecord(Base):
    __tablename__ = 'input_records'

    id = Column(Integer, primary_key=True, autoincrement=True)
    input_set_id = Column(Text, ForeignKey('input_sets.id', ondelete='CASCADE'), nullable=False)
    tenant_id = Column(Text, nullable=False)
    record_id = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_input_records_set_position', 'input_set_id', 'position'),
    )
