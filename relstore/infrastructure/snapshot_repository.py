"""Snapshot Repository — SQLAlchemy-backed durable medium for whole-store snapshots.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - All SQLAlchemy exceptions mapped to PersistenceError (core/errors.py)
    - load() returns the stored snapshot for this key, or the seed when none exists
    - save() overwrites the row for this key in one commit and bumps its revision

Design Decisions:
    - Implements core.repository_protocols.SnapshotAdapter structurally (no inheritance)
    - Tables created with metadata.create_all on startup: there is one table and the
      snapshot format carries no schema version to migrate
"""

import copy
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import Engine, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from relstore.core.domain_types import Snapshot
from relstore.core.errors import PersistenceError
from relstore.db.base import Base
from relstore.models.snapshot_record import SnapshotRecord

logger = logging.getLogger(__name__)


def create_tables(engine: Engine) -> None:
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        logger.error(f"Could not create snapshot tables: {e}")
        raise PersistenceError("Table creation failed", "create_tables")


class SnapshotRepository:
    """Reads and writes one snapshot row identified by `key`."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        key: str = "default",
        domain: str = "",
        seed: Callable[[], Snapshot] | None = None,
    ):
        self._session_factory = session_factory
        self.key = key
        self.domain = domain
        self._seed = seed

    @contextmanager
    def session(self, operation: str) -> Iterator[Session]:
        """Provide session with auto-rollback and error mapping."""
        session = self._session_factory()
        try:
            yield session
        except IntegrityError as e:
            session.rollback()
            logger.error(f"DB integrity error: {e}", extra={"snapshot_key": self.key})
            raise PersistenceError("Integrity constraint violated", operation)
        except OperationalError as e:
            session.rollback()
            logger.error(f"DB operational error: {e}", extra={"snapshot_key": self.key})
            raise PersistenceError("Connection or operational error", operation)
        except DBAPIError as e:
            session.rollback()
            logger.error(f"DB driver error: {e}", extra={"snapshot_key": self.key})
            raise PersistenceError("Database driver error", operation)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"SQLAlchemy error: {e}", extra={"snapshot_key": self.key})
            raise PersistenceError("Database operation failed", operation)
        finally:
            session.close()

    def load(self) -> Snapshot:
        with self.session("load") as db:
            row = db.get(SnapshotRecord, self.key)
            if row is not None:
                logger.info(
                    f"Loaded snapshot revision {row.revision}",
                    extra={"snapshot_key": self.key},
                )
                return copy.deepcopy(row.payload)
        if self._seed is None:
            logger.info("No snapshot stored, starting empty", extra={"snapshot_key": self.key})
            return {}
        logger.info("No snapshot stored, starting from seed data", extra={"snapshot_key": self.key})
        return self._seed()

    def save(self, snapshot: Snapshot) -> None:
        with self.session("save") as db:
            row = db.get(SnapshotRecord, self.key)
            if row is None:
                db.add(SnapshotRecord(
                    key=self.key, domain=self.domain,
                    payload=copy.deepcopy(snapshot), revision=1,
                ))
            else:
                # new object: JSON columns only detect reassignment
                row.payload = copy.deepcopy(snapshot)
                row.domain = self.domain
                row.revision += 1
            db.commit()

    def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            with self.session("health_check") as db:
                db.execute(text("SELECT 1"))
            return True
        except PersistenceError as e:
            logger.error(f"DB health check failed: {e.message}")
            return False
