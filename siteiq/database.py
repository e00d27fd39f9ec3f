"""
Database engine + session factory.

Always initializes. Defaults to SQLite for local dev, Postgres in production.
get_session() always returns a real session.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from siteiq.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


# Some hosts inject postgres:// but SQLAlchemy 2.x requires postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

# SQLite needs different engine kwargs than Postgres
if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)

# Rows handed back by the stores are read after their session closes
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


def import_models():
    """Import every model module so Base.metadata knows about all tables."""
    import importlib
    for name in ('schema_config', 'input_set', 'scoring_run', 'scored_result', 'idempotency_key'):
        importlib.import_module(f'siteiq.models.{name}')


def init_db(bind=None):
    """Create all tables. Used by local dev and tests; production uses Alembic."""
    import_models()
    Base.metadata.create_all(bind or engine)
