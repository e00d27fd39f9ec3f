"""
Idempotency claim store.

claim() is a single INSERT ... ON CONFLICT DO NOTHING against the composite
primary key (tenant_id, key, resource_type). Whoever inserts first owns the
key; every later caller reads back the first caller's resource_id.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from siteiq.config import IDEMPOTENCY_TTL_HOURS
from siteiq.database import get_session
from siteiq.errors import InvalidArgumentError, StoreError
from siteiq.models.idempotency_key import IdempotencyKey

logger = logging.getLogger('services.idempotency')

_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


@dataclass(frozen=True)
class ClaimResult:
    already_existed: bool
    resource_id: str


class IdempotencyStore:
    def __init__(self, session_factory=get_session, ttl_hours: int = IDEMPOTENCY_TTL_HOURS):
        self._session_factory = session_factory
        self.ttl = timedelta(hours=ttl_hours)

    def claim(self, tenant_id: str, key: str, resource_type: str, resource_id: str) -> ClaimResult:
        """
        Atomically claim `key` for `resource_id`.

        Returns ClaimResult(already_existed=False, resource_id) for the winner
        and ClaimResult(already_existed=True, <winner's id>) for everyone else.
        """
        if not key:
            raise InvalidArgumentError("idempotency key cannot be empty")

        now = datetime.now(timezone.utc)
        session = self._session_factory()
        try:
            dialect = session.get_bind().dialect.name
            insert = _INSERTS.get(dialect)
            if insert is None:
                raise StoreError(f"idempotency claims are not supported on {dialect}")

            stmt = (
                insert(IdempotencyKey)
                .values(tenant_id=tenant_id, key=key, resource_type=resource_type,
                        resource_id=resource_id, created_at=now, expires_at=now + self.ttl)
                .on_conflict_do_nothing(index_elements=['tenant_id', 'key', 'resource_type'])
                .returning(IdempotencyKey.resource_id)
            )
            inserted = session.execute(stmt).scalar_one_or_none()
            if inserted is not None:
                session.commit()
                return ClaimResult(already_existed=False, resource_id=inserted)

            existing = session.execute(
                select(IdempotencyKey.resource_id).where(
                    IdempotencyKey.tenant_id == tenant_id,
                    IdempotencyKey.key == key,
                    IdempotencyKey.resource_type == resource_type,
                )
            ).scalar_one_or_none()
            session.commit()
            if existing is None:
                raise StoreError("unexpected empty result from idempotency claim")

            logger.info("Idempotency key replayed for %s %s", resource_type, existing,
                        extra={'tenant_id': tenant_id})
            return ClaimResult(already_existed=True, resource_id=existing)
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to claim idempotency key: {e}") from e
        finally:
            session.close()

    def clean_expired(self, now: Optional[datetime] = None) -> int:
        """Delete claims past their expiry. Returns how many were removed."""
        now = now or datetime.now(timezone.utc)
        session = self._session_factory()
        try:
            result = session.execute(delete(IdempotencyKey).where(IdempotencyKey.expires_at < now))
            session.commit()
            if result.rowcount:
                logger.info("Removed %d expired idempotency keys", result.rowcount)
            return result.rowcount
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to clean expired idempotency keys: {e}") from e
        finally:
            session.close()
