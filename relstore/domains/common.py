"""Domain Building Blocks — shared payload base and EntitySpec factory.

Invariants:
    - Every payload model forbids unknown fields (typos surface as field-level errors)
    - Strings are whitespace-stripped before validation
    - The update model of a kind is always derived from its create model

Design Decisions:
    - entity() wraps EntitySpec so domain modules read as tables, not boilerplate
"""

from pydantic import BaseModel, ConfigDict

from relstore.core.payloads import partial_model
from relstore.core.schema import EntitySpec, ForeignKey, UniqueField


class RecordModel(BaseModel):
    """Base for per-kind create payloads."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def entity(
    kind: str,
    model: type[RecordModel],
    *,
    foreign_keys: tuple[ForeignKey, ...] = (),
    unique: tuple[UniqueField, ...] = (),
    search: tuple[str, ...] = (),
    date_field: str | None = None,
    status_field: str | None = None,
) -> EntitySpec:
    return EntitySpec(
        kind=kind,
        create_model=model,
        update_model=partial_model(model),
        foreign_keys=foreign_keys,
        unique=unique,
        search_fields=search,
        date_field=date_field,
        status_field=status_field,
    )
