"""SnapshotRecord ORM — one row per store: key -> full JSON snapshot.

Invariants:
    - key is the primary key; saving the same key overwrites the row
    - payload holds the whole collection set as produced by store_to_snapshot

Design Decisions:
    - JSON column over one table per entity kind: the store is schema-driven at runtime,
      the database is only a durable key-value medium
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from relstore.db.base import Base


class SnapshotRecord(Base):
    __tablename__ = "snapshots"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    domain: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
