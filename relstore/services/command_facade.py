"""Command Facade — the only entry point that mutates the store.

Invariants:
    - execute() sequences normalize -> validate -> mutate -> back-refs/cascade -> persist
    - Every typed StoreError comes back inside a CommandResult; execute() does not raise them
    - A rejected command leaves the store exactly as it was
    - A failed snapshot write is a warning on a successful result: memory stays authoritative
      and the next successful save restores durability
    - Nothing is saved before a load has succeeded: after a failed load every command
      first retries it, and is rejected with PersistenceError while storage stays unreadable
    - query() and summarize() read fresh store lists on every call (never cached)

Design Decisions:
    - Synchronous: callers on one event loop thread get serialized commands,
      so every command looks atomic to the next read
    - open()/close() make the store lifecycle explicit (load + reconcile, final persist)
    - Read APIs raise StoreError (unknown kind, bad params, missing id): there is nothing
      to roll back, and the HTTP layer maps them directly
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from relstore.core.analytics import (
    SeriesSource, allocation, children_of, due_items, group_counts, group_sum,
    recent_activity, time_series, totals, weighted_average,
)
from relstore.core.domain_types import (
    AnalyticsView, CommandOp, EntityId, Record, SortDirection,
)
from relstore.core.entity_store import EntityStore
from relstore.core.errors import (
    ErrorContext, PayloadValidationError, PersistenceError, StoreError, field_issue,
)
from relstore.core.integrity import CascadeReport, IntegrityEngine, ReconcileReport
from relstore.core.payloads import normalize_create, normalize_update
from relstore.core.query import QueryPredicates, run_query
from relstore.core.repository_protocols import SnapshotAdapter
from relstore.core.schema import StoreSchema
from relstore.core.snapshot import snapshot_from_payload, store_to_snapshot

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CommandResult:
    """Outcome of one execute() call."""
    ok: bool
    entity_id: EntityId | None = None
    record: Record | None = None
    error: StoreError | None = None
    warnings: list[StoreError] = field(default_factory=list)
    cascaded: CascadeReport | None = None


@dataclass
class OpenReport:
    """What open() found and fixed in the persisted snapshot."""
    repairs: list[str] = field(default_factory=list)
    warnings: list[StoreError] = field(default_factory=list)


class CommandFacade:
    """Owns one EntityStore plus its integrity engine and snapshot adapter."""

    def __init__(self, schema: StoreSchema, adapter: SnapshotAdapter, id_factory=None):
        self._schema = schema
        self._adapter = adapter
        self._store = EntityStore(schema, id_factory=id_factory)
        self._integrity = IntegrityEngine(self._store)
        self.opened = False
        self.durable = False

    @property
    def schema(self) -> StoreSchema:
        return self._schema

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def adapter(self) -> SnapshotAdapter:
        return self._adapter

    # ─── Lifecycle ───────────────────────────────────────────────

    def open(self) -> OpenReport:
        """Load the persisted snapshot (or seed), repair it, make it the live state."""
        report = OpenReport()
        try:
            self._load(report)
        except PersistenceError as e:
            logger.warning(
                f"Snapshot load failed, serving an empty store until storage is readable: "
                f"{e.message}",
                extra={"error_code": e.code},
            )
            report.warnings.append(e)
            self._store.replace_all({})
        self.opened = True
        logger.info(
            f"Store opened: {sum(self._store.count(k) for k in self._schema.kinds)} records, "
            f"{len(report.repairs)} repairs",
        )
        return report

    def _load(self, report: OpenReport) -> None:
        raw = self._adapter.load()
        snapshot, issues = snapshot_from_payload(self._schema, raw)
        self._store.replace_all(snapshot)
        self.durable = True
        reconciled: ReconcileReport = self._integrity.reconcile()
        report.repairs = issues + reconciled.repairs
        if report.repairs:
            report.warnings.extend(self._persist())

    def _recover(self) -> None:
        """Retry the snapshot load after a failed open. Raises PersistenceError."""
        report = OpenReport()
        self._load(report)
        logger.info(f"Snapshot storage readable again, {len(report.repairs)} repairs")

    def close(self) -> list[StoreError]:
        """Final persist. Returns persistence warnings, if any."""
        warnings = self._persist() if self.opened and self.durable else []
        self.opened = False
        logger.info("Store closed")
        return warnings

    # ─── Commands ────────────────────────────────────────────────

    def execute(
        self,
        kind: str,
        op: CommandOp | str,
        entity_id: str | None = None,
        payload: dict | None = None,
    ) -> CommandResult:
        """Run one create/update/delete command to completion."""
        try:
            command = CommandOp(op)
        except ValueError:
            return self._reject(PayloadValidationError(
                f"Unknown command '{op}'",
                [field_issue("op", "expected create, update or delete")],
                ErrorContext(entity_kind=kind, command=str(op)),
            ))
        try:
            if not self.durable:
                self._recover()
            if command == CommandOp.CREATE:
                result = self._create(kind, payload or {})
            elif command == CommandOp.UPDATE:
                result = self._update(kind, self._require_id(kind, entity_id, command), payload or {})
            else:
                result = self._delete(kind, self._require_id(kind, entity_id, command))
        except StoreError as e:
            e.context.command = command.value
            return self._reject(e)

        result.warnings.extend(self._persist())
        logger.info(
            f"Committed {command.value} {kind} '{result.entity_id}'",
            extra={
                "entity_kind": kind,
                "entity_id": result.entity_id,
                "command": command.value,
                "cascade_count": result.cascaded.count if result.cascaded else None,
            },
        )
        return result

    def _create(self, kind: str, payload: dict) -> CommandResult:
        record = normalize_create(self._schema, kind, payload)
        error = self._integrity.validate(kind, record)
        if error:
            raise error
        new_id = self._store.create(kind, record)
        created = self._store.get(kind, new_id)
        self._integrity.after_write(kind, new_id, None, created)
        return CommandResult(ok=True, entity_id=new_id, record=self._store.get(kind, new_id))

    def _update(self, kind: str, entity_id: str, payload: dict) -> CommandResult:
        existing = self._store.get(kind, entity_id)
        changes = normalize_update(self._schema, kind, existing, payload)
        merged = {**existing, **changes}
        error = self._integrity.validate(kind, merged, entity_id)
        if error:
            raise error
        self._store.update(kind, entity_id, changes)
        self._integrity.after_write(kind, entity_id, existing, merged)
        return CommandResult(
            ok=True, entity_id=EntityId(entity_id), record=self._store.get(kind, entity_id),
        )

    def _delete(self, kind: str, entity_id: str) -> CommandResult:
        removed = self._store.delete(kind, entity_id)
        report = self._integrity.cascade(kind, entity_id, removed)
        return CommandResult(ok=True, entity_id=EntityId(entity_id), cascaded=report)

    def _require_id(self, kind: str, entity_id: str | None, command: CommandOp) -> str:
        if not entity_id:
            raise PayloadValidationError(
                f"{command.value} needs an entity id",
                [field_issue("id", "required for this command")],
                ErrorContext(entity_kind=kind, command=command.value),
            )
        return entity_id

    def _reject(self, error: StoreError) -> CommandResult:
        logger.warning(
            f"Rejected command: {error.message}",
            extra={
                "error_code": error.code,
                "entity_kind": error.context.entity_kind,
                "entity_id": error.context.entity_id,
                "command": error.context.command,
            },
        )
        return CommandResult(ok=False, error=error)

    def _persist(self) -> list[StoreError]:
        try:
            self._adapter.save(store_to_snapshot(self._store))
        except PersistenceError as e:
            logger.warning(
                f"Snapshot not persisted, memory stays authoritative: {e.message}",
                extra={"error_code": e.code},
            )
            return [e]
        return []

    # ─── Reads ───────────────────────────────────────────────────

    def get(self, kind: str, entity_id: str) -> Record:
        return self._store.get(kind, entity_id)

    def query(
        self,
        kind: str,
        search: str = "",
        filters: dict[str, Any] | None = None,
        sort_key: str | None = None,
        sort_dir: SortDirection | str = SortDirection.ASC,
    ) -> list[Record]:
        """Filtered, sorted copy of a collection."""
        spec = self._schema.spec(kind)
        known = self._known_fields(kind)
        problems = [
            field_issue(name, "unknown field") for name in (filters or {}) if name not in known
        ]
        if sort_key and sort_key not in known:
            problems.append(field_issue("sort_key", f"unknown field '{sort_key}'"))
        try:
            direction = SortDirection(sort_dir)
        except ValueError:
            problems.append(field_issue("sort_dir", "expected asc or desc"))
        if problems:
            raise PayloadValidationError(
                f"Invalid {kind} query", problems,
                ErrorContext(entity_kind=kind, command="query"),
            )
        equals, references = {}, {}
        for name, value in (filters or {}).items():
            (references if spec.foreign_key(name) else equals)[name] = value
        predicates = QueryPredicates(
            search=search or "",
            search_fields=spec.search_fields,
            equals=equals,
            references=references,
        )
        return run_query(self._store.list(kind), predicates, sort_key, direction)

    def _known_fields(self, kind: str) -> set[str]:
        spec = self._schema.spec(kind)
        return {"id", *spec.create_model.model_fields, *self._schema.managed_fields(kind)}

    # ─── Analytics ───────────────────────────────────────────────

    def summarize(self, view: AnalyticsView | str, params: dict[str, Any] | None = None) -> dict:
        """Compute one analytics view from the current store state."""
        try:
            view = AnalyticsView(view)
        except ValueError:
            raise PayloadValidationError(
                f"Unknown analytics view '{view}'",
                [field_issue("view", ", ".join(v.value for v in AnalyticsView))],
            )
        params = dict(params or {})
        handler = {
            AnalyticsView.STATUS_DISTRIBUTION: self._status_distribution,
            AnalyticsView.GROUP_SUM: self._group_sum,
            AnalyticsView.SECTOR_ALLOCATION: self._sector_allocation,
            AnalyticsView.WEIGHTED_AVERAGE: self._weighted_average,
            AnalyticsView.TIME_SERIES: self._time_series,
            AnalyticsView.TOTALS: self._totals,
            AnalyticsView.DUE_ITEMS: self._due_items,
            AnalyticsView.RECENT_ACTIVITY: self._recent_activity,
            AnalyticsView.CHILDREN_OF: self._children_of,
        }[view]
        return {"view": view.value, **handler(params)}

    def _status_distribution(self, params: dict) -> dict:
        kind = self._kind_param(params)
        field_name = self._field_param(
            params, kind, "field", self._schema.spec(kind).status_field,
        )
        return {"kind": kind, "field": field_name,
                "counts": group_counts(self._store.list(kind), field_name)}

    def _group_sum(self, params: dict) -> dict:
        kind = self._kind_param(params)
        group_by = self._field_param(params, kind, "group_by")
        value = self._field_param(params, kind, "value")
        return {"kind": kind, "group_by": group_by, "value": value,
                "groups": group_sum(self._store.list(kind), group_by, value)}

    def _sector_allocation(self, params: dict) -> dict:
        kind = self._kind_param(params)
        group_by = self._field_param(params, kind, "group_by", "sector")
        value = self._field_param(params, kind, "value")
        return {"kind": kind, "group_by": group_by, "value": value,
                "allocation": allocation(self._store.list(kind), group_by, value)}

    def _weighted_average(self, params: dict) -> dict:
        kind = self._kind_param(params)
        metric = self._field_param(params, kind, "metric")
        weight = self._field_param(params, kind, "weight")
        return {"kind": kind, "metric": metric, "weight": weight,
                "value": weighted_average(self._store.list(kind), metric, weight)}

    def _time_series(self, params: dict) -> dict:
        granularity = str(params.get("granularity") or "month")
        if granularity not in ("day", "month", "year"):
            raise self._param_error("granularity", "expected day, month or year")
        value = params.get("value") or None
        sources = []
        for kind in self._kinds_param(params):
            date_field = self._date_field(kind, params)
            if value is not None:
                self._field_param({"value": value}, kind, "value")
            sources.append(SeriesSource(kind, self._store.list(kind), date_field, value))
        return {"granularity": granularity, "series": time_series(sources, granularity)}

    def _totals(self, params: dict) -> dict:
        kind = self._kind_param(params)
        names = _split(params.get("fields"))
        if not names:
            raise self._param_error("fields", "comma-separated numeric fields required")
        for name in names:
            self._field_param({"fields": name}, kind, "fields")
        return {"kind": kind, **totals(self._store.list(kind), names)}

    def _due_items(self, params: dict) -> dict:
        kind = self._kind_param(params)
        date_field = self._date_field(kind, params)
        raw_as_of = params.get("as_of")
        try:
            as_of = date.fromisoformat(str(raw_as_of)) if raw_as_of else date.today()
        except ValueError:
            raise self._param_error("as_of", "expected an ISO date (YYYY-MM-DD)")
        items = due_items(
            self._store.list(kind), date_field, as_of,
            self._schema.spec(kind).status_field, _split(params.get("closed")),
        )
        return {"kind": kind, "as_of": as_of.isoformat(), "count": len(items), "items": items}

    def _recent_activity(self, params: dict) -> dict:
        kinds = _split(params.get("kinds")) or [
            s.kind for s in self._schema.entities if s.date_field
        ]
        try:
            limit = int(params.get("limit") or 10)
        except ValueError:
            raise self._param_error("limit", "expected an integer")
        if limit < 1:
            raise self._param_error("limit", "must be at least 1")
        sources = [
            (kind, self._store.list(kind), self._date_field(kind, {}))
            for kind in self._kinds_param({"kinds": ",".join(kinds)})
        ]
        return {"items": recent_activity(sources, limit)}

    def _children_of(self, params: dict) -> dict:
        kind = self._kind_param(params)
        fk_name = self._field_param(params, kind, "field")
        fk = self._schema.spec(kind).foreign_key(fk_name)
        if fk is None or fk.many:
            raise self._param_error("field", f"'{fk_name}' is not a single foreign key of {kind}")
        parent_id = params.get("parent_id")
        if not parent_id:
            raise self._param_error("parent_id", "required")
        self._store.get(fk.target, parent_id)  # 404 for unknown parents
        items = children_of(self._store.list(kind), fk_name, parent_id)
        return {"kind": kind, "parent_kind": fk.target, "parent_id": parent_id,
                "count": len(items), "items": items}

    # --- param helpers ---

    def _kind_param(self, params: dict) -> str:
        kind = params.get("kind")
        if not kind:
            raise self._param_error("kind", "required")
        self._schema.spec(kind)
        return kind

    def _kinds_param(self, params: dict) -> list[str]:
        kinds = _split(params.get("kinds"))
        if not kinds:
            raise self._param_error("kinds", "comma-separated entity kinds required")
        for kind in kinds:
            self._schema.spec(kind)
        return kinds

    def _field_param(self, params: dict, kind: str, name: str, default: Any = _MISSING) -> str:
        value = params.get(name) or (None if default is _MISSING else default)
        if not value:
            raise self._param_error(name, "required")
        if value not in self._known_fields(kind):
            raise self._param_error(name, f"unknown {kind} field '{value}'")
        return value

    def _date_field(self, kind: str, params: dict) -> str:
        date_field = params.get("date_field") or self._schema.spec(kind).date_field
        if not date_field:
            raise self._param_error("date_field", f"{kind} has no default date field")
        return self._field_param({"date_field": date_field}, kind, "date_field")

    def _param_error(self, name: str, reason: str) -> PayloadValidationError:
        return PayloadValidationError(
            f"Invalid analytics parameter '{name}'", [field_issue(name, reason)],
            ErrorContext(command="summarize"),
        )


def _split(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]
