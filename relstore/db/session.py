"""Session Factory — engine and sessionmaker construction for a database URL.

Invariants:
    - In-memory SQLite shares one connection (StaticPool) so every session sees the same data
    - expire_on_commit=False: loaded rows stay readable after commit

Design Decisions:
    - Separate from infrastructure/snapshot_repository.py: test fixtures and scripts
      need a raw factory without the repository around it
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(
        database_url, echo=echo, pool_pre_ping=True, pool_recycle=3600,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the given engine."""
    return sessionmaker(engine, expire_on_commit=False)
