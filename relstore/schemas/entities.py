"""Entity Schemas — response envelopes and request bodies for the HTTP boundary.

Invariants:
    - Record payloads stay plain dicts: their shape is validated per kind by the domain
      payload models inside the facade, not here
    - Warnings are serialized with the same envelope as errors

Design Decisions:
    - from_result() builders keep CommandResult -> JSON mapping out of the routes
"""

from pydantic import BaseModel, Field, field_validator

from relstore.core.errors import StoreError
from relstore.services.command_facade import CommandResult


def _warning(error: StoreError) -> dict:
    return error.to_response()["error"]


class CommandResponse(BaseModel):
    """Successful create/update/delete."""
    id: str
    record: dict | None = None
    cascaded: dict | None = None
    warnings: list[dict] = []

    @classmethod
    def from_result(cls, result: CommandResult) -> "CommandResponse":
        return cls(
            id=result.entity_id,
            record=result.record,
            cascaded=result.cascaded.to_dict() if result.cascaded else None,
            warnings=[_warning(w) for w in result.warnings],
        )


class QueryResponse(BaseModel):
    kind: str
    count: int
    items: list[dict]


class ExtractionRequest(BaseModel):
    """Free text to turn into one record."""
    text: str = Field(min_length=1, max_length=20_000)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("text cannot be empty or whitespace")
        return v


class ExtractionResponse(CommandResponse):
    extracted: dict
