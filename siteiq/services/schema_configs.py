"""
Schema configuration store: versioned global/tenant configs and run snapshots.

A config row with tenant_id NULL is the global default. At most one row per
scope is active; save_config() deactivates the others.
"""
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

import yaml
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from siteiq.database import get_session
from siteiq.errors import ConfigurationError, StoreError
from siteiq.models.schema_config import SchemaConfig, SchemaConfigSnapshot
from siteiq.pipeline.schema import ResolvedSchema

logger = logging.getLogger('services.schema_configs')


class ConfigStore:
    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def _active(self, tenant_id: Optional[str]) -> Optional[SchemaConfig]:
        session = self._session_factory()
        try:
            scope = SchemaConfig.tenant_id.is_(None) if tenant_id is None else SchemaConfig.tenant_id == tenant_id
            return (
                session.query(SchemaConfig)
                .filter(scope, SchemaConfig.is_active.is_(True))
                .order_by(SchemaConfig.created_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"failed to load schema config: {e}") from e
        finally:
            session.close()

    def get_active_global_config(self) -> Optional[SchemaConfig]:
        return self._active(None)

    def get_active_tenant_config(self, tenant_id: str) -> Optional[SchemaConfig]:
        return self._active(tenant_id)

    def save_config(self, tenant_id: Optional[str], version: str, config: Mapping[str, Any],
                    description: str = '') -> SchemaConfig:
        """Store `config` as `version` for the scope and make it the only active one."""
        session = self._session_factory()
        try:
            scope = SchemaConfig.tenant_id.is_(None) if tenant_id is None else SchemaConfig.tenant_id == tenant_id
            session.execute(update(SchemaConfig).where(scope).values(is_active=False))

            row = session.query(SchemaConfig).filter(scope, SchemaConfig.version == version).one_or_none()
            if row is None:
                row = SchemaConfig(id=str(uuid.uuid4()), tenant_id=tenant_id, version=version)
                session.add(row)
            row.config = dict(config)
            row.description = description
            row.is_active = True

            session.commit()
            session.refresh(row)
            logger.info("Saved %s schema config version %s",
                        'global' if tenant_id is None else f'tenant {tenant_id}', version)
            return row
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to save schema config: {e}") from e
        finally:
            session.close()

    # ── Snapshots ─────────────────────────────────────────────────────────────

    def create_snapshot(self, run_id: str, schema_config_id: Optional[str], resolved: ResolvedSchema,
                        input_set_id: Optional[str] = None,
                        raw_config: Optional[Mapping[str, Any]] = None) -> SchemaConfigSnapshot:
        snapshot = SchemaConfigSnapshot(
            id=str(uuid.uuid4()),
            run_id=run_id,
            schema_config_id=schema_config_id,
            input_set_id=input_set_id,
            config=dict(raw_config or {}),
            snapshot_data=resolved.to_dict(),
        )
        session = self._session_factory()
        try:
            session.add(snapshot)
            session.commit()
            session.refresh(snapshot)
            return snapshot
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to create schema snapshot for run {run_id}: {e}") from e
        finally:
            session.close()

    def get_snapshot(self, snapshot_id: str) -> Optional[SchemaConfigSnapshot]:
        session = self._session_factory()
        try:
            return session.get(SchemaConfigSnapshot, snapshot_id)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to load schema snapshot {snapshot_id}: {e}") from e
        finally:
            session.close()


# ── YAML config files ─────────────────────────────────────────────────────────

def load_config_file(path) -> Dict[str, Any]:
    """
    Read a schema config YAML file.

    Expected layout:
        version: "1.0"
        global:  {identifier_column: ..., fields: {...}}
        tenants:
          <tenant_id>: {fields: {...}, weights: {...}}

    Returns {'version', 'global', 'tenants'}; raises ConfigurationError when
    the document is unreadable or has no global section.
    """
    try:
        with open(path) as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to read schema config file {path}: {e}") from e

    if not isinstance(doc, dict) or not isinstance(doc.get('global'), dict):
        raise ConfigurationError(f"schema config file {path} has no 'global' section")

    tenants = doc.get('tenants') or {}
    if not isinstance(tenants, dict):
        raise ConfigurationError(f"schema config file {path}: 'tenants' must be a mapping")

    return {
        'version': str(doc.get('version', '1.0')),
        'global': doc['global'],
        'tenants': {str(tid): cfg or {} for tid, cfg in tenants.items()},
    }
