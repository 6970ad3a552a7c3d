"""Store Snapshot — serialization / deserialization of the full collection set.

Invariants:
    - store_to_snapshot produces a JSON-safe dict: {kind: [record, ...]} in insertion order
    - snapshot_from_payload accepts anything JSON-decoded and returns a well-formed Snapshot
    - Every schema kind is present in the result (missing kinds -> empty list)
    - Records without a string id, duplicate ids, and unknown kinds are dropped and reported
    - Round trip: snapshot_from_payload(store_to_snapshot(s)) == store_to_snapshot(s)

Design Decisions:
    - Pure functions, no IO: the repository only moves the dict (ADR: core owns the format)
    - Structural repair here, referential repair in IntegrityEngine.reconcile
"""

import copy
import logging

from relstore.core.domain_types import Snapshot
from relstore.core.entity_store import EntityStore
from relstore.core.schema import StoreSchema

logger = logging.getLogger(__name__)


def store_to_snapshot(store: EntityStore) -> Snapshot:
    """Serialize every collection. Pure, no IO."""
    return store.snapshot()


def empty_snapshot(schema: StoreSchema) -> Snapshot:
    return {kind: [] for kind in schema.kinds}


def snapshot_from_payload(
    schema: StoreSchema, payload: object,
) -> tuple[Snapshot, list[str]]:
    """Rebuild a Snapshot from decoded JSON; returns (snapshot, structural issues)."""
    snapshot = empty_snapshot(schema)
    issues: list[str] = []
    if not isinstance(payload, dict):
        issues.append(f"snapshot root is {type(payload).__name__}, expected object")
        return snapshot, issues

    for kind, records in payload.items():
        if kind not in snapshot:
            issues.append(f"unknown kind '{kind}' dropped")
            continue
        if not isinstance(records, list):
            issues.append(f"'{kind}' is not a list")
            continue
        seen: set[str] = set()
        for position, record in enumerate(records):
            entity_id = record.get("id") if isinstance(record, dict) else None
            if not isinstance(entity_id, str) or not entity_id:
                issues.append(f"{kind}[{position}] has no id")
                continue
            if entity_id in seen:
                issues.append(f"{kind} '{entity_id}' duplicated")
                continue
            seen.add(entity_id)
            snapshot[kind].append(copy.deepcopy(record))

    for issue in issues:
        logger.warning(f"Snapshot repaired: {issue}")
    return snapshot, issues
