"""Error Hierarchy — typed, categorized exceptions for every store failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Validation-type errors carry field-level details: [{"field", "reason"}]
    - Pre-mutation errors (validation, referential, not-found) guarantee the store is unchanged
    - PersistenceError is a WARNING: in-memory state stays authoritative
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Single hierarchy with StoreError base: the facade converts any of them into a
      CommandResult, and the FastAPI global handler catches strays (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    REFERENTIAL = "referential"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"
    DECODE = "decode"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    entity_kind: str | None = None
    entity_id: str | None = None
    command: str | None = None


class StoreError(Exception):
    """Base exception for all relstore errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        details: list[dict] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.details = details or []

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "details": self.details,
                "context": {
                    "entity_kind": self.context.entity_kind,
                    "entity_id": self.context.entity_id,
                    "command": self.context.command,
                },
            }
        }


def field_issue(field_name: str, reason: str) -> dict:
    """One field-level failure entry."""
    return {"field": field_name, "reason": reason}


# ─── Pre-mutation Errors (400-level) ────────────────────────────

class PayloadValidationError(StoreError):
    """Payload failed a required-field, type, or managed-field check."""
    def __init__(
        self, message: str, details: list[dict],
        context: ErrorContext | None = None,
        code: str = "VALIDATION_ERROR",
        category: ErrorCategory = ErrorCategory.VALIDATION,
        http_status: int = 400,
    ):
        super().__init__(
            message, code, category, ErrorSeverity.ERROR,
            context, http_status, details,
        )

    @property
    def fields(self) -> list[str]:
        return [d["field"] for d in self.details]


class UniquenessError(PayloadValidationError):
    """A domain uniqueness constraint would be violated."""
    def __init__(
        self, kind: str, field_name: str, value: Any,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{kind} with {field_name} '{value}' already exists",
            [field_issue(field_name, "must be unique")],
            context, code="UNIQUENESS_VIOLATION",
            category=ErrorCategory.CONFLICT, http_status=409,
        )


class ReferentialError(StoreError):
    """A foreign key does not resolve to an existing entity."""
    def __init__(
        self, field_name: str, target_kind: str, target_id: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{field_name} references missing {target_kind} '{target_id}'",
            "REFERENTIAL_ERROR", ErrorCategory.REFERENTIAL,
            ErrorSeverity.ERROR, context, 422,
            [field_issue(field_name, f"unknown {target_kind} '{target_id}'")],
        )
        self.field = field_name
        self.target_kind = target_kind
        self.target_id = target_id


class EntityNotFoundError(StoreError):
    """Update/delete/get target does not exist."""
    def __init__(
        self, kind: str, entity_id: str, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.entity_kind = ctx.entity_kind or kind
        ctx.entity_id = ctx.entity_id or entity_id
        super().__init__(
            f"{kind} '{entity_id}' not found",
            "ENTITY_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )


class UnknownKindError(StoreError):
    """Entity kind is not part of the active domain schema."""
    def __init__(self, kind: str, context: ErrorContext | None = None):
        super().__init__(
            f"Unknown entity kind '{kind}'",
            "UNKNOWN_KIND", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 404,
        )


class DecodeError(StoreError):
    """Malformed input record at the import boundary."""
    def __init__(
        self, message: str, row: int | None = None,
        details: list[dict] | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "DECODE_ERROR", ErrorCategory.DECODE,
            ErrorSeverity.ERROR, context, 400, details,
        )
        self.row = row


# ─── Infrastructure Errors (500-level) ──────────────────────────

class PersistenceError(StoreError):
    """Snapshot read/write failed. Non-fatal: memory stays authoritative."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Snapshot {operation} failed: {message}",
            "PERSISTENCE_ERROR", ErrorCategory.PERSISTENCE,
            ErrorSeverity.WARNING, context, 503,
        )
        self.operation = operation


class IdentifierCollisionError(StoreError):
    """Generated identifier already exists — internal fault, never ignored."""
    def __init__(self, kind: str, entity_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Generated id '{entity_id}' collides within {kind}",
            "ID_COLLISION", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )


class ExtractionError(StoreError):
    """External text-to-record call failed or returned unusable output."""
    def __init__(
        self, message: str, reason: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Record extraction failed ({reason}): {message}",
            "EXTRACTION_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.reason = reason
