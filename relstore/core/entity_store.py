"""Entity Store — authoritative in-memory collections and low-level CRUD primitives.

Invariants:
    - One ordered collection per entity kind; insertion order is preserved
    - Identifiers are unique within a kind and never reassigned
    - Every record handed out is a deep copy; callers never mutate the store in place
    - No cascade or validation here: that is the integrity engine's job

Design Decisions:
    - List + id index per kind: ordered iteration for display, O(1) lookup for integrity checks
    - Monotonic-millisecond + random-suffix ids: sortable by creation, collision raises
      IdentifierCollisionError instead of silently overwriting
    - id_factory injectable: tests can force collisions deterministically
"""

import copy
import logging
import secrets
import time
from typing import Callable

from relstore.core.domain_types import EntityId, Record, Snapshot
from relstore.core.errors import (
    EntityNotFoundError, ErrorContext, IdentifierCollisionError,
)
from relstore.core.schema import StoreSchema

logger = logging.getLogger(__name__)


class IdGenerator:
    """Timestamp ids that never go backwards within one process."""

    def __init__(self):
        self._last_ms = 0

    def __call__(self) -> str:
        now_ms = max(int(time.time() * 1000), self._last_ms + 1)
        self._last_ms = now_ms
        return f"{now_ms:x}-{secrets.token_hex(4)}"


class EntityStore:
    """Owns every collection of one domain schema."""

    def __init__(
        self,
        schema: StoreSchema,
        collections: Snapshot | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._schema = schema
        self._new_id = id_factory or IdGenerator()
        self._rows: dict[str, list[Record]] = {}
        self._index: dict[str, dict[str, Record]] = {}
        self.replace_all(collections or {})

    @property
    def schema(self) -> StoreSchema:
        return self._schema

    # --- Commands -------------------------------------------------------------

    def create(self, kind: str, payload: Record) -> EntityId:
        """Append a new record; back-reference lists default to empty."""
        index = self._kind_index(kind)
        entity_id = self._new_id()
        if entity_id in index:
            raise IdentifierCollisionError(
                kind, entity_id, ErrorContext(entity_kind=kind, command="create"),
            )
        record = copy.deepcopy(payload)
        for ref in self._schema.back_refs_of_parent(kind):
            record.setdefault(ref.field, [])
        record["id"] = entity_id
        self._rows[kind].append(record)
        index[entity_id] = record
        return EntityId(entity_id)

    def update(self, kind: str, entity_id: str, changes: Record) -> Record:
        """Shallow-merge changes over the record. `id` is immutable."""
        record = self._require(kind, entity_id, "update")
        for name, value in changes.items():
            if name == "id":
                continue
            record[name] = copy.deepcopy(value)
        return copy.deepcopy(record)

    def delete(self, kind: str, entity_id: str) -> Record:
        """Remove and return the record. Dependents are NOT touched."""
        record = self._require(kind, entity_id, "delete")
        del self._index[kind][entity_id]
        self._rows[kind] = [r for r in self._rows[kind] if r["id"] != entity_id]
        return record

    # --- Reads ----------------------------------------------------------------

    def get(self, kind: str, entity_id: str) -> Record:
        return copy.deepcopy(self._require(kind, entity_id, "get"))

    def find(self, kind: str, entity_id: str) -> Record | None:
        record = self._kind_index(kind).get(entity_id)
        return copy.deepcopy(record) if record is not None else None

    def exists(self, kind: str, entity_id: str) -> bool:
        return entity_id in self._kind_index(kind)

    def count(self, kind: str) -> int:
        return len(self._kind_index(kind))

    def ids(self, kind: str) -> list[str]:
        self._kind_index(kind)
        return [r["id"] for r in self._rows[kind]]

    # defined after ids(): `list` shadows the builtin inside this class body
    def list(self, kind: str) -> list[Record]:
        """Copy of the collection, insertion order."""
        self._kind_index(kind)
        return copy.deepcopy(self._rows[kind])

    # --- Whole-store ----------------------------------------------------------

    def snapshot(self) -> Snapshot:
        return {kind: copy.deepcopy(rows) for kind, rows in self._rows.items()}

    def replace_all(self, collections: Snapshot) -> None:
        """Swap in a full collection set. Unknown kinds are ignored."""
        rows: dict[str, list[Record]] = {kind: [] for kind in self._schema.kinds}
        index: dict[str, dict[str, Record]] = {kind: {} for kind in self._schema.kinds}
        for kind, records in collections.items():
            if kind not in rows:
                logger.warning(
                    f"Ignoring unknown kind '{kind}' in collections",
                    extra={"entity_kind": kind},
                )
                continue
            for record in records:
                record = copy.deepcopy(record)
                rows[kind].append(record)
                index[kind][record["id"]] = record
        self._rows = rows
        self._index = index

    # --- Internals ------------------------------------------------------------

    def _kind_index(self, kind: str) -> dict[str, Record]:
        if kind not in self._index:
            self._schema.spec(kind)  # raises UnknownKindError
        return self._index[kind]

    def _require(self, kind: str, entity_id: str, command: str) -> Record:
        record = self._kind_index(kind).get(entity_id)
        if record is None:
            raise EntityNotFoundError(
                kind, entity_id,
                ErrorContext(entity_kind=kind, entity_id=entity_id, command=command),
            )
        return record
