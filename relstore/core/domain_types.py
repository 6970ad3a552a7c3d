"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - EntityId wraps str — identifiers are opaque strings, never parsed
    - UNASSIGNED ("") is the only legal "no parent" value for an optional foreign key
    - FILTER_DISABLED values switch a query filter off
    - All valid modes encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (records are plain dicts)
"""

from enum import Enum
from typing import Any, NewType


# ─── Identity Types ──────────────────────────────────────────────

EntityId = NewType("EntityId", str)

# A record is a flat mapping: field -> scalar | list[scalar]
Record = dict[str, Any]
Snapshot = dict[str, list[Record]]


# ─── Sentinels ───────────────────────────────────────────────────

UNASSIGNED = ""
FILTER_DISABLED = frozenset({"", "all"})


# ─── Enums ───────────────────────────────────────────────────────

class CascadePolicy(str, Enum):
    """What happens to dependents when their parent is deleted."""
    HARD_CASCADE = "hard_cascade"
    SOFT_ORPHAN = "soft_orphan"


class CommandOp(str, Enum):
    """Mutations accepted by the Command Facade."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AnalyticsView(str, Enum):
    """Fixed set of read-only summaries served by the Analytics API."""
    STATUS_DISTRIBUTION = "status-distribution"
    GROUP_SUM = "group-sum"
    SECTOR_ALLOCATION = "sector-allocation"
    WEIGHTED_AVERAGE = "weighted-average"
    TIME_SERIES = "time-series"
    TOTALS = "totals"
    DUE_ITEMS = "due-items"
    RECENT_ACTIVITY = "recent-activity"
    CHILDREN_OF = "children-of"


class TransferFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class DomainName(str, Enum):
    """Bundled domain instantiations (see relstore/domains/)."""
    PORTFOLIO = "portfolio"
    FLEET = "fleet"
    LAB = "lab"
    TASKS = "tasks"
