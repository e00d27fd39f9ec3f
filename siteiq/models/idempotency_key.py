"""
IdempotencyKey model: (tenant, key, resource_type) -> resource_id claims.

The composite primary key is what makes the claim upsert race-free.
"""
from sqlalchemy import Column, Text, DateTime
from sqlalchemy.sql import func

from siteiq.database import Base


class IdempotencyKey(Base):
    __tablename__ = 'idempotency_keys'

    tenant_id = Column(Text, primary_key=True)
    key = Column(Text, primary_key=True)
    resource_type = Column(Text, primary_key=True)
    resource_id = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
