"""Service test fixtures — in-memory snapshot database, opened facades, HTTP client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - Facades use a counter id factory so ids are predictable (id1, id2, ...)
    - The HTTP client talks to the real app with app.state swapped for test objects

Design Decisions:
    - ASGITransport does not run the lifespan: the client fixture assigns
      app.state.facade / app.state.completer itself and restores them afterwards
    - Adapter and completer fakes live in tests/services/fakes.py
"""

import pytest
from httpx import ASGITransport, AsyncClient

from relstore.db.session import create_db_engine, create_session_factory
from relstore.domains import get_schema
from relstore.infrastructure.snapshot_repository import SnapshotRepository, create_tables
from relstore.main import app
from relstore.services.command_facade import CommandFacade
from tests.services.fakes import FakeCompleter, counter_ids


@pytest.fixture
def test_engine():
    engine = create_db_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def make_facade(test_session_factory):
    """Opened facade over the test database: make_facade("fleet", seed=False)."""

    def _make(domain="portfolio", seed=True, overrides=None, adapter=None):
        schema = get_schema(domain, overrides)
        if adapter is None:
            adapter = SnapshotRepository(
                test_session_factory, key=domain, domain=schema.name,
                seed=schema.seed if seed else None,
            )
        facade = CommandFacade(schema, adapter, id_factory=counter_ids())
        facade.open()
        return facade

    return _make


@pytest.fixture
def completer():
    return FakeCompleter()


@pytest.fixture
async def client(make_facade, completer):
    """FastAPI test client over a seeded portfolio store."""
    previous = {name: getattr(app.state, name, None) for name in ("facade", "completer")}
    app.state.facade = make_facade("portfolio")
    app.state.completer = completer

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    for name, value in previous.items():
        setattr(app.state, name, value)
