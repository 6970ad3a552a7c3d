"""Analytics Aggregator — derived, read-only summaries over record collections.

Invariants:
    - Pure functions over lists of records: no store access, no caching, no mutation
    - Weighted and plain averages fall back to 0.0 when the denominator is zero
    - Non-numeric (or bool) values are skipped by numeric aggregates, never coerced
    - Time series buckets are sorted chronologically and every bucket carries every series

Design Decisions:
    - The facade feeds fresh store lists into these functions on every call, so results
      can never go stale after a mutation (ADR: recompute over cache)
    - Group labels keep first-appearance order: deterministic output for charts
"""

from datetime import date, datetime
from typing import Iterable, NamedTuple

from relstore.core.domain_types import Record
from relstore.core.query import parse_instant

UNASSIGNED_LABEL = "Unassigned"

_BUCKET_FORMATS = {"day": "%Y-%m-%d", "month": "%Y-%m", "year": "%Y"}


class SeriesSource(NamedTuple):
    """One collection feeding a time series (e.g. experiments by date)."""
    label: str
    records: list[Record]
    date_field: str
    value_field: str | None = None  # None -> count records


def _number(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _label(value) -> str:
    if value is None or value == "":
        return UNASSIGNED_LABEL
    return str(value)


# --- Group-bys ----------------------------------------------------------------

def group_counts(records: Iterable[Record], field: str) -> dict[str, int]:
    counts: dict[str, int] = {}
    for record in records:
        label = _label(record.get(field))
        counts[label] = counts.get(label, 0) + 1
    return counts


def group_sum(
    records: Iterable[Record], group_field: str, value_field: str,
) -> dict[str, dict]:
    """Per group: number of records and the summed numeric field."""
    groups: dict[str, dict] = {}
    for record in records:
        entry = groups.setdefault(
            _label(record.get(group_field)), {"count": 0, "total": 0.0},
        )
        entry["count"] += 1
        amount = _number(record.get(value_field))
        if amount is not None:
            entry["total"] += amount
    return groups


def allocation(
    records: Iterable[Record], group_field: str, value_field: str,
) -> list[dict]:
    """group_sum plus each group's percentage share of the grand total."""
    groups = group_sum(records, group_field, value_field)
    grand = sum(g["total"] for g in groups.values())
    return [
        {
            "group": label,
            "count": g["count"],
            "total": g["total"],
            "share": (g["total"] / grand * 100.0) if grand else 0.0,
        }
        for label, g in groups.items()
    ]


# --- Averages -----------------------------------------------------------------

def weighted_average(
    records: Iterable[Record], metric_field: str, weight_field: str,
) -> float:
    """Σ(metric·weight) / Σ(weight); 0.0 when the weights sum to zero."""
    numerator = 0.0
    denominator = 0.0
    for record in records:
        metric = _number(record.get(metric_field))
        weight = _number(record.get(weight_field))
        if metric is None or weight is None:
            continue
        numerator += metric * weight
        denominator += weight
    if denominator == 0:
        return 0.0
    return numerator / denominator


def totals(records: Iterable[Record], fields: Iterable[str]) -> dict:
    """Record count plus sum and average of each numeric field."""
    records = list(records)
    summary: dict[str, dict] = {}
    for name in fields:
        values = [v for v in (_number(r.get(name)) for r in records) if v is not None]
        total = sum(values)
        summary[name] = {
            "sum": total,
            "average": total / len(values) if values else 0.0,
        }
    return {"count": len(records), "fields": summary}


# --- Time ---------------------------------------------------------------------

def bucket_key(value, granularity: str = "month") -> str | None:
    if granularity not in _BUCKET_FORMATS:
        raise ValueError(f"Unknown granularity '{granularity}'")
    instant = parse_instant(value) if isinstance(value, str) else None
    if instant is None:
        return None
    return instant.strftime(_BUCKET_FORMATS[granularity])


def time_series(
    sources: Iterable[SeriesSource], granularity: str = "month",
) -> list[dict]:
    """Merge several collections into one chronologically sorted bucket series."""
    sources = list(sources)
    buckets: dict[str, dict] = {}
    for source in sources:
        for record in source.records:
            key = bucket_key(record.get(source.date_field), granularity)
            if key is None:
                continue
            row = buckets.setdefault(key, {s.label: 0 for s in sources})
            if source.value_field is None:
                row[source.label] += 1
            else:
                amount = _number(record.get(source.value_field))
                if amount is not None:
                    row[source.label] += amount
    return [{"bucket": key, **buckets[key]} for key in sorted(buckets)]


def due_items(
    records: Iterable[Record], date_field: str, as_of: date,
    status_field: str | None = None, closed_statuses: Iterable[str] = (),
) -> list[Record]:
    """Records whose date is on or before as_of, skipping closed statuses."""
    closed = {s.casefold() for s in closed_statuses}
    cutoff = datetime.combine(as_of, datetime.max.time())
    due = []
    for record in records:
        instant = parse_instant(record.get(date_field) or "")
        if instant is None or instant > cutoff:
            continue
        if status_field and str(record.get(status_field, "")).casefold() in closed:
            continue
        due.append(record)
    return due


def recent_activity(
    sources: Iterable[tuple[str, list[Record], str]], limit: int = 10,
) -> list[dict]:
    """Newest-first feed across collections: (kind, records, date_field) sources."""
    entries = []
    for kind, records, date_field in sources:
        for record in records:
            instant = parse_instant(record.get(date_field) or "")
            if instant is not None:
                entries.append((instant, kind, record))
    entries.sort(key=lambda e: e[0], reverse=True)
    return [
        {"kind": kind, "id": record["id"], "date": instant.isoformat(), "record": record}
        for instant, kind, record in entries[:limit]
    ]


def children_of(
    records: Iterable[Record], fk_field: str, parent_id: str,
) -> list[Record]:
    return [r for r in records if r.get(fk_field) == parent_id]
