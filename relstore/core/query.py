"""Query Engine — pure filter/sort transformations over a collection snapshot.

Invariants:
    - filter_records / sort_records never mutate their input list or its records
    - Filters are a conjunction: search AND every equality filter AND every reference filter
    - A filter value of None, "" or "all" (any case) disables that filter
    - Sorting is stable; descending flips the comparison, ties keep prior relative order,
      so sort(sort(xs, k, d), k, d) == sort(xs, k, d)
    - Missing values (None or "") sort last in both directions

Design Decisions:
    - Sort type inferred from the values present (number / bool / ISO date / text):
      records are plain dicts, the column type is what the data says it is
    - Text compares case-sensitively through locale.strxfrm (locale-aware ordering)
    - sorted(reverse=True) over a negated comparator: Python keeps stability when reversing
"""

import locale
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from relstore.core.domain_types import FILTER_DISABLED, Record, SortDirection


@dataclass(frozen=True)
class QueryPredicates:
    """AND-ed filter set. `equals` targets enumerated fields, `references` foreign keys."""
    search: str = ""
    search_fields: tuple[str, ...] = ()
    equals: dict[str, Any] = field(default_factory=dict)
    references: dict[str, str] = field(default_factory=dict)


def is_disabled(value: Any) -> bool:
    return value is None or (
        isinstance(value, str) and value.strip().lower() in FILTER_DISABLED
    )


# --- Filter -------------------------------------------------------------------

def filter_records(items: Iterable[Record], predicates: QueryPredicates) -> list[Record]:
    """Records matching every active predicate, original order preserved."""
    needle = "" if is_disabled(predicates.search) else predicates.search.strip().casefold()
    equals = {k: v for k, v in predicates.equals.items() if not is_disabled(v)}
    references = {k: v for k, v in predicates.references.items() if not is_disabled(v)}
    return [
        record for record in items
        if (not needle or _matches_search(record, needle, predicates.search_fields))
        and all(_field_equals(record.get(k), v) for k, v in equals.items())
        and all(_field_equals(record.get(k), v) for k, v in references.items())
    ]


def _matches_search(record: Record, needle: str, fields: tuple[str, ...]) -> bool:
    for name in fields:
        value = record.get(name)
        if isinstance(value, str) and needle in value.casefold():
            return True
        if isinstance(value, list) and any(
            needle in str(item).casefold() for item in value
        ):
            return True
    return False


def _field_equals(value: Any, expected: Any) -> bool:
    """Exact match; list-valued fields match on membership."""
    if isinstance(value, list):
        return any(_field_equals(item, expected) for item in value)
    if isinstance(expected, str) and value is not None and not isinstance(value, str):
        if isinstance(value, bool):
            return expected.strip().lower() in (("true", "1", "yes") if value else ("false", "0", "no"))
        try:
            return float(expected) == float(value)
        except (TypeError, ValueError):
            return False
    return value == expected


# --- Sort ---------------------------------------------------------------------

def sort_records(
    items: Iterable[Record], key: str | None,
    direction: SortDirection | str = SortDirection.ASC,
) -> list[Record]:
    """Stable sort by one field; returns a new list."""
    items = list(items)
    if not key:
        return items
    descending = SortDirection(direction) == SortDirection.DESC
    present = [r for r in items if not _missing(r.get(key))]
    missing = [r for r in items if _missing(r.get(key))]
    to_key = _key_function([r[key] for r in present])
    ordered = sorted(present, key=lambda r: to_key(r[key]), reverse=descending)
    return ordered + missing


def run_query(
    items: Iterable[Record], predicates: QueryPredicates,
    sort_key: str | None = None,
    sort_dir: SortDirection | str = SortDirection.ASC,
) -> list[Record]:
    return sort_records(filter_records(items, predicates), sort_key, sort_dir)


def _missing(value: Any) -> bool:
    return value is None or value == ""


def _key_function(values: list[Any]):
    if all(isinstance(v, (int, float)) for v in values):
        return lambda v: v  # bool is an int subclass: False < True
    if all(isinstance(v, str) and parse_instant(v) is not None for v in values):
        return parse_instant
    return lambda v: locale.strxfrm(_as_text(v))


def _as_text(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def parse_instant(value: str) -> datetime | None:
    """ISO date or datetime -> naive UTC datetime; None when not date-like."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
