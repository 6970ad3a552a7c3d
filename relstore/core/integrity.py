"""Referential Integrity & Cascade Engine — keeps references sound around every mutation.

Invariants:
    - validate() never mutates; it returns a typed error or None
    - Every non-empty foreign key resolves to an existing entity of the target kind
    - parent.<back-ref list> == ids of children pointing at parent, after every write
    - Uniqueness constraints compare case-insensitively unless declared otherwise
    - Deleting an entity leaves no record referencing it: hard-cascade deletes
      dependents recursively, soft-orphan clears the key, multi-reference lists are detached
    - All parent-list fixes go through EntityStore.update — one call per affected parent

Design Decisions:
    - One generic engine driven by the schema's CascadeRule table, no per-entity handlers
    - reconcile() repairs loaded snapshots instead of trusting them: older data may
      hold dangling ids, stale back-references, or empty required keys
    - validate() returns an error object or None; the facade decides how to surface it
"""

import logging
from dataclasses import dataclass, field

from relstore.core.domain_types import UNASSIGNED, CascadePolicy, Record
from relstore.core.entity_store import EntityStore
from relstore.core.errors import (
    ErrorContext, PayloadValidationError, ReferentialError, StoreError,
    UniquenessError, field_issue,
)
from relstore.core.schema import BackReference, ForeignKey

logger = logging.getLogger(__name__)


@dataclass
class CascadeReport:
    """What a delete touched beyond the target itself."""
    deleted: list[tuple[str, str]] = field(default_factory=list)
    orphaned: list[tuple[str, str, str]] = field(default_factory=list)
    detached: list[tuple[str, str, str]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.deleted) + len(self.orphaned) + len(self.detached)

    def to_dict(self) -> dict:
        return {
            "deleted": [{"kind": k, "id": i} for k, i in self.deleted],
            "orphaned": [{"kind": k, "id": i, "field": f} for k, i, f in self.orphaned],
            "detached": [{"kind": k, "id": i, "field": f} for k, i, f in self.detached],
        }


@dataclass
class ReconcileReport:
    repairs: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.repairs


class IntegrityEngine:
    """Validation, back-reference sync and cascade over one EntityStore."""

    def __init__(self, store: EntityStore):
        self._store = store
        self._schema = store.schema

    # --- Pre-write validation -------------------------------------------------

    def validate(
        self, kind: str, record: Record, entity_id: str | None = None,
    ) -> StoreError | None:
        """Check foreign keys and uniqueness of a full (merged) record."""
        spec = self._schema.spec(kind)
        ctx = ErrorContext(
            entity_kind=kind, entity_id=entity_id,
            command="update" if entity_id else "create",
        )
        for fk in spec.foreign_keys:
            error = self._check_foreign_key(fk, record.get(fk.field), ctx)
            if error:
                return error
        for unique in spec.unique:
            value = record.get(unique.field)
            if value in (None, UNASSIGNED):
                continue
            if self._value_taken(kind, unique.field, value, unique.case_insensitive, entity_id):
                return UniquenessError(kind, unique.field, value, ctx)
        return None

    def _check_foreign_key(
        self, fk: ForeignKey, value, ctx: ErrorContext,
    ) -> StoreError | None:
        if fk.many:
            for target_id in value or []:
                if not self._store.exists(fk.target, target_id):
                    return ReferentialError(fk.field, fk.target, target_id, ctx)
            return None
        if value in (None, UNASSIGNED):
            if fk.required:
                return PayloadValidationError(
                    f"{ctx.entity_kind}.{fk.field} is required",
                    [field_issue(fk.field, f"a {fk.target} is required")], ctx,
                )
            return None
        if not self._store.exists(fk.target, value):
            return ReferentialError(fk.field, fk.target, value, ctx)
        return None

    def _value_taken(
        self, kind: str, field_name: str, value, case_insensitive: bool,
        exclude_id: str | None,
    ) -> bool:
        wanted = _fold(value, case_insensitive)
        return any(
            r["id"] != exclude_id and _fold(r.get(field_name), case_insensitive) == wanted
            for r in self._store.list(kind)
        )

    # --- Post-write back-reference sync ---------------------------------------

    def after_write(
        self, kind: str, entity_id: str, before: Record | None, after: Record,
    ) -> None:
        """Move entity_id between parent lists when its foreign key changed."""
        for ref in self._schema.back_refs_of_child(kind):
            old = (before or {}).get(ref.child_field) or UNASSIGNED
            new = after.get(ref.child_field) or UNASSIGNED
            if before is not None and old == new:
                continue
            if old:
                self._remove_from_parent(ref, old, entity_id)
            if new:
                self._add_to_parent(ref, new, entity_id)

    def _add_to_parent(self, ref: BackReference, parent_id: str, child_id: str) -> None:
        parent = self._store.get(ref.parent, parent_id)
        ids = list(parent.get(ref.field) or [])
        if child_id not in ids:
            self._store.update(ref.parent, parent_id, {ref.field: ids + [child_id]})

    def _remove_from_parent(self, ref: BackReference, parent_id: str, child_id: str) -> None:
        parent = self._store.find(ref.parent, parent_id)
        if parent is None:
            return
        ids = list(parent.get(ref.field) or [])
        if child_id in ids:
            self._store.update(
                ref.parent, parent_id, {ref.field: [i for i in ids if i != child_id]},
            )

    # --- Cascade on delete ----------------------------------------------------

    def cascade(
        self, kind: str, entity_id: str, removed: Record,
        report: CascadeReport | None = None,
    ) -> CascadeReport:
        """Fix every dependent of an entity that was just deleted from the store."""
        report = report if report is not None else CascadeReport()

        # child role: drop from the parent's back-reference list
        for ref in self._schema.back_refs_of_child(kind):
            parent_id = removed.get(ref.child_field) or UNASSIGNED
            if parent_id:
                self._remove_from_parent(ref, parent_id, entity_id)

        # leaf lists naming this entity
        for dependent, fk in self._schema.multi_refs_to(kind):
            for record in self._store.list(dependent):
                ids = record.get(fk.field) or []
                if entity_id in ids:
                    self._store.update(
                        dependent, record["id"],
                        {fk.field: [i for i in ids if i != entity_id]},
                    )
                    report.detached.append((dependent, record["id"], fk.field))

        # parent role: apply the policy table
        for rule in self._schema.rules_for_parent(kind):
            for record in self._store.list(rule.dependent):
                if record.get(rule.field) != entity_id:
                    continue
                if not self._store.exists(rule.dependent, record["id"]):
                    continue  # already removed earlier in this cascade
                if rule.policy == CascadePolicy.HARD_CASCADE:
                    gone = self._store.delete(rule.dependent, record["id"])
                    report.deleted.append((rule.dependent, record["id"]))
                    self.cascade(rule.dependent, record["id"], gone, report)
                else:
                    self._store.update(
                        rule.dependent, record["id"], {rule.field: UNASSIGNED},
                    )
                    report.orphaned.append((rule.dependent, record["id"], rule.field))
        return report

    # --- Load-time repair -----------------------------------------------------

    def reconcile(self) -> ReconcileReport:
        """Bring a freshly loaded store back in line: every key resolves and back-references mirror children."""
        report = ReconcileReport()
        self._repair_single_keys(report)
        self._repair_multi_keys(report)
        self._rebuild_back_refs(report)
        for repair in report.repairs:
            logger.warning(f"Reconciled: {repair}")
        return report

    def _repair_single_keys(self, report: ReconcileReport) -> None:
        for spec in self._schema.entities:
            for fk in spec.foreign_keys:
                if fk.many:
                    continue
                rule = next(
                    r for r in self._schema.cascade_rules
                    if r.dependent == spec.kind and r.field == fk.field
                )
                for record in self._store.list(spec.kind):
                    if not self._store.exists(spec.kind, record["id"]):
                        continue
                    value = record.get(fk.field) or UNASSIGNED
                    dangling = bool(value) and not self._store.exists(fk.target, value)
                    missing_required = fk.required and not value
                    if not (dangling or missing_required):
                        continue
                    if missing_required or rule.policy == CascadePolicy.HARD_CASCADE:
                        gone = self._store.delete(spec.kind, record["id"])
                        cascade = self.cascade(spec.kind, record["id"], gone)
                        report.repairs.append(
                            f"dropped {spec.kind} '{record['id']}' "
                            f"({fk.field}='{value}', {cascade.count} dependents fixed)",
                        )
                    else:
                        self._store.update(spec.kind, record["id"], {fk.field: UNASSIGNED})
                        report.repairs.append(
                            f"cleared {spec.kind} '{record['id']}'.{fk.field} (was '{value}')",
                        )

    def _repair_multi_keys(self, report: ReconcileReport) -> None:
        for spec in self._schema.entities:
            for fk in spec.foreign_keys:
                if not fk.many:
                    continue
                for record in self._store.list(spec.kind):
                    ids = record.get(fk.field) or []
                    kept = [i for i in ids if self._store.exists(fk.target, i)]
                    if kept != ids:
                        self._store.update(spec.kind, record["id"], {fk.field: kept})
                        report.repairs.append(
                            f"detached {len(ids) - len(kept)} missing id(s) from "
                            f"{spec.kind} '{record['id']}'.{fk.field}",
                        )

    def _rebuild_back_refs(self, report: ReconcileReport) -> None:
        for ref in self._schema.back_references:
            children: dict[str, list[str]] = {}
            for child in self._store.list(ref.child):
                parent_id = child.get(ref.child_field) or UNASSIGNED
                if parent_id:
                    children.setdefault(parent_id, []).append(child["id"])
            for parent in self._store.list(ref.parent):
                expected = children.get(parent["id"], [])
                current = list(parent.get(ref.field) or [])
                rebuilt = list(dict.fromkeys(i for i in current if i in expected))
                rebuilt += [i for i in expected if i not in rebuilt]
                if rebuilt != current:
                    self._store.update(ref.parent, parent["id"], {ref.field: rebuilt})
                    report.repairs.append(
                        f"rebuilt {ref.parent} '{parent['id']}'.{ref.field}",
                    )


def _fold(value, case_insensitive: bool):
    if case_insensitive and isinstance(value, str):
        return value.strip().casefold()
    return value
