"""Shared test fixtures."""
import uuid

import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from siteiq.config import PipelineConfig
from siteiq.database import init_db
from siteiq.models.input_set import InputSet, InputRecord
from siteiq.models.scoring_run import ScoringRun
from siteiq.services.idempotency import IdempotencyStore
from siteiq.services.records import RecordStore
from siteiq.services.runs import RunStore
from siteiq.services.schema_configs import ConfigStore

TENANT_ID = 'tenant-acme'
OTHER_TENANT_ID = 'tenant-globex'


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created. One shared connection."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory injected into every store under test."""
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ── Stores ───────────────────────────────────────────────────────────────────

@pytest.fixture
def run_store(session_factory):
    return RunStore(session_factory)


@pytest.fixture
def record_store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def config_store(session_factory):
    return ConfigStore(session_factory)


@pytest.fixture
def idempotency_store(session_factory):
    return IdempotencyStore(session_factory)


@pytest.fixture
def pipeline_config():
    """Fast retries so failure paths don't sleep."""
    return PipelineConfig(max_retries=2, base_backoff_ms=1, batch_size=2, worker_count=2)


# ── Schema configs ───────────────────────────────────────────────────────────

@pytest.fixture
def global_config():
    """Small global field set: identifier, one text column, three scored fields."""
    return {
        'identifier_column': 'site_id',
        'fields': {
            'site_id': {'type': 'identifier', 'required': True},
            'city': {'type': 'text'},
            'unemployment_rate': {'type': 'percentage', 'min': 0, 'max': 100,
                                  'weight': 1.0, 'direction': 'maximize'},
            'labor_cost_index': {'type': 'index', 'min': 0, 'max': 200,
                                 'weight': 0.5, 'direction': 'minimize'},
            'local_competitors': {'type': 'integer', 'min': 0, 'max': 20,
                                  'weight': 0.8, 'direction': 'minimize'},
        },
    }


@pytest.fixture
def seeded_configs(config_store, global_config):
    """Active global config plus a tenant override that re-weights one field."""
    global_row = config_store.save_config(None, '1.0', global_config)
    tenant_row = config_store.save_config(TENANT_ID, '1.0', {'weights': {'unemployment_rate': 2.0}})
    return global_row, tenant_row


# ── Factories ────────────────────────────────────────────────────────────────

@pytest.fixture
def make_input_set(record_store):
    """Factory: store an input set with (record_id, data) pairs."""
    def _make(records=(), tenant_id=TENANT_ID, validation_status='valid', **overrides):
        input_set = InputSet(
            id=overrides.pop('id', str(uuid.uuid4())),
            tenant_id=tenant_id,
            name=overrides.pop('name', 'test sites'),
            validation_status=validation_status,
            row_count=len(records),
            warnings=[],
            errors=[],
            **overrides,
        )
        rows = [InputRecord(record_id=rid, data=data) for rid, data in records]
        return record_store.create_input_set(input_set, rows)
    return _make


@pytest.fixture
def make_run(run_store):
    """Factory: build a queued ScoringRun and persist it (persist=False to skip)."""
    def _make(persist=True, **overrides):
        defaults = dict(
            id=str(uuid.uuid4()),
            tenant_id=TENANT_ID,
            input_set_id='input-set-001',
            status='queued',
            model_version='site-selection-iq-v1.0',
            scoring_config={},
            attempt_count=0,
        )
        defaults.update(overrides)
        run = ScoringRun(**defaults)
        return run_store.create_run(run) if persist else run
    return _make


# ── Flask ────────────────────────────────────────────────────────────────────

@pytest.fixture
def services(session_factory, pipeline_config):
    """Real stores on the test database; dispatcher replaced by a mock."""
    from siteiq.extensions import build_services
    services = build_services(session_factory, pipeline_config)
    services.dispatcher.shutdown(wait=False)
    services.dispatcher = MagicMock()
    return services


@pytest.fixture
def app(services):
    """Flask test app."""
    from siteiq import create_app
    app = create_app(services=services)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def tenant_headers():
    return {'X-Tenant-ID': TENANT_ID}
