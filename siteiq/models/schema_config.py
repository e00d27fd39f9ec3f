"""
SchemaConfig + SchemaConfigSnapshot models.

A SchemaConfig row is either the global field-definition set (tenant_id NULL)
or one tenant's override. Snapshots freeze the resolved schema a run used.
"""
from sqlalchemy import Column, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func

from siteiq.database import Base


class SchemaConfig(Base):
    __tablename__ = 'schema_configs'

    id = Column(Text, primary_key=True)
    tenant_id = Column(Text, nullable=True)      # NULL = global default
    version = Column(Text, nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    description = Column(Text, default='')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'version', name='uq_schema_config_tenant_version'),
        Index('ix_schema_configs_tenant_active', 'tenant_id', 'is_active'),
    )


class SchemaConfigSnapshot(Base):
    """Immutable copy of the resolved schema captured when a run starts."""
    __tablename__ = 'schema_config_snapshots'

    id = Column(Text, primary_key=True)
    run_id = Column(Text, ForeignKey('scoring_runs.id', ondelete='CASCADE'), nullable=False, index=True)
    schema_config_id = Column(Text, nullable=True)
    input_set_id = Column(Text, nullable=True)
    config = Column(JSON, nullable=False, default=dict)           # raw global config
    snapshot_data = Column(JSON, nullable=False, default=dict)    # resolved schema
    created_at = Column(DateTime(timezone=True), server_default=func.now())
