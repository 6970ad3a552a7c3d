"""Payload Normalization — turns loosely-shaped input dicts into validated records.

Invariants:
    - `id` and engine-managed back-reference fields are never accepted from a payload
    - Create payloads are validated against the kind's create model, defaults filled
    - Update payloads are validated twice: the partial model checks names and types,
      then the merged record is re-validated against the create model
    - Output is JSON-safe (model_dump mode="json") — dates become ISO strings
    - Failures raise PayloadValidationError with one detail entry per offending field

Design Decisions:
    - Partial models derived from create models (partial_model): one source of truth per kind,
      no hand-maintained twin classes drifting apart
    - Merged re-validation over per-field rules: constraints like gt=0 or cross-field
      validators keep holding after a partial update
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from relstore.core.domain_types import Record
from relstore.core.errors import ErrorContext, PayloadValidationError, field_issue
from relstore.core.schema import StoreSchema


def partial_model(model: type[BaseModel]) -> type[BaseModel]:
    """Derive the explicit partial-update type: every field optional, extras forbidden."""
    fields: dict[str, Any] = {
        name: (Optional[info.annotation], None)
        for name, info in model.model_fields.items()
    }
    return create_model(
        f"{model.__name__}Update",
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def normalize_create(schema: StoreSchema, kind: str, payload: dict) -> Record:
    """Validate a create payload and return the record body (no id yet)."""
    spec = schema.spec(kind)
    _reject_reserved(schema, kind, payload, "create")
    model = _validate(spec.create_model, payload, kind, "create")
    return model.model_dump(mode="json")


def normalize_update(
    schema: StoreSchema, kind: str, existing: Record, payload: dict,
) -> Record:
    """Validate a partial payload against the existing record; return every field that changes."""
    spec = schema.spec(kind)
    _reject_reserved(schema, kind, payload, "update")
    partial = _validate(spec.update_model, payload, kind, "update")
    changes = partial.model_dump(mode="json", exclude_unset=True)

    known = spec.create_model.model_fields
    merged = {k: v for k, v in existing.items() if k in known}
    merged.update(changes)
    full = _validate(spec.create_model, merged, kind, "update")
    normalized = full.model_dump(mode="json")
    return {
        name: value for name, value in normalized.items()
        if name in changes or existing.get(name) != value
    }


def _reject_reserved(
    schema: StoreSchema, kind: str, payload: dict, command: str,
) -> None:
    if not isinstance(payload, dict):
        raise PayloadValidationError(
            "Payload must be an object",
            [field_issue("__root__", "expected a mapping of field to value")],
            ErrorContext(entity_kind=kind, command=command),
        )
    details = []
    if "id" in payload:
        details.append(field_issue("id", "identifiers are assigned by the store"))
    for name in sorted(schema.managed_fields(kind) & payload.keys()):
        details.append(field_issue(name, "managed by the store"))
    if details:
        raise PayloadValidationError(
            f"Invalid {kind} payload", details,
            ErrorContext(entity_kind=kind, command=command),
        )


def _validate(
    model: type[BaseModel], payload: dict, kind: str, command: str,
) -> BaseModel:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise PayloadValidationError(
            f"Invalid {kind} payload",
            [
                field_issue(
                    ".".join(str(loc) for loc in err["loc"]) or "__root__",
                    err["msg"],
                )
                for err in e.errors()
            ],
            ErrorContext(entity_kind=kind, command=command),
        )
