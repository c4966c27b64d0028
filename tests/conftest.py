"""Shared test fixtures."""
import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from expansion_engine import import_models
from expansion_engine.database import Base


class FakeRedis:
    """Minimal in-memory Redis fake covering the hash commands the breakers use."""

    def __init__(self):
        self.hash_store = {}

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hash_store.setdefault(key, {})
        if mapping:
            h.update({k: str(v) for k, v in mapping.items()})
        if field is not None:
            h[field] = str(value)

    def hincrby(self, key, field, amount=1):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    def delete(self, *keys):
        for k in keys:
            self.hash_store.pop(k, None)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session, schema created."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def patch_get_session(db_engine):
    """Route all get_session() calls to the in-memory database."""
    factory = sessionmaker(bind=db_engine, expire_on_commit=False)
    with patch('expansion_engine.database.SessionLocal', factory):
        yield factory


@pytest.fixture
def db_session(patch_get_session):
    session = patch_get_session()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(autouse=True)
def breakers(fake_redis):
    """Fresh circuit breakers over the fake Redis for every test."""
    from expansion_engine.services import circuit_breaker
    circuit_breaker._registry.clear()
    circuit_breaker.init_breakers(fake_redis)
    yield circuit_breaker._registry
    circuit_breaker._registry.clear()


@pytest.fixture
def app(fake_redis):
    """Flask test app."""
    from expansion_engine import create_app
    with patch('expansion_engine.extensions.redis_client', fake_redis):
        app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def seed_accounts():
    """Factory fixture — ingests customers/telemetry/opportunities/events."""
    from expansion_engine.services.ingest import store_ingest

    def _seed(customers=None, telemetry=(), opportunities=(), events=()):
        if customers is None:
            customers = [
                {'domain': 'acme.com', 'account_id': 'A1', 'account_name': 'Acme', 'arr': 120000,
                 'licensed_seats': 100},
                {'domain': 'beta.io', 'account_id': 'B1', 'account_name': 'Beta', 'arr': 30000,
                 'licensed_seats': 50},
            ]
        return store_ingest(customers=customers, telemetry=telemetry,
                            opportunities=opportunities, events=events)
    return _seed


@pytest.fixture
def make_run():
    """Factory fixture — creates a Run row and returns its id."""
    from datetime import date
    from expansion_engine.schemas.run_config import RunConfig
    from expansion_engine.services.db import create_run

    def _make(evaluation_month=date(2025, 3, 1), total_accounts=2, **config):
        return create_run(evaluation_month, RunConfig(**config), total_accounts=total_accounts,
                          prompt_version='v1')
    return _make
