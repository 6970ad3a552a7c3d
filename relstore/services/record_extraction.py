"""Record Extraction — free text -> create payload via an external text completer.

Invariants:
    - The completer call happens before, and entirely outside, the store mutation
    - The reply must contain one JSON object; anything else raises ExtractionError
    - Keys the kind's payload model does not declare are dropped before submission
    - The extracted payload goes through CommandFacade.execute like any other create

Design Decisions:
    - The prompt carries the payload model's JSON schema, so the same model that
      validates the command also describes the expected output
"""

import json
import logging

from relstore.core.domain_types import CommandOp
from relstore.core.errors import ErrorContext, ExtractionError
from relstore.core.repository_protocols import TextCompleter
from relstore.services.command_facade import CommandFacade, CommandResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You turn unstructured notes into one data record. Reply with a single JSON object "
    "that follows the given JSON schema. Omit fields the text does not mention. "
    "Never invent identifiers. No prose, no markdown."
)


def build_prompt(facade: CommandFacade, kind: str, text: str) -> str:
    spec = facade.schema.spec(kind)
    schema = json.dumps(spec.create_model.model_json_schema(), indent=2)
    return (
        f"Record kind: {kind}\n\nJSON schema:\n{schema}\n\n"
        f"Text:\n<<<\n{text.strip()}\n>>>"
    )


def parse_reply(reply: str, context: ErrorContext | None = None) -> dict:
    """First '{' to last '}' of the reply, decoded as a JSON object."""
    start, end = reply.find("{"), reply.rfind("}")
    if start < 0 or end <= start:
        raise ExtractionError("Reply contains no JSON object", "invalid_output", context)
    try:
        payload = json.loads(reply[start:end + 1])
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Reply is not valid JSON: {e.msg}", "invalid_output", context)
    if not isinstance(payload, dict):
        raise ExtractionError("Reply JSON is not an object", "invalid_output", context)
    return payload


class RecordExtractor:
    """Extract a payload with a TextCompleter, then create it through the facade."""

    def __init__(self, completer: TextCompleter, facade: CommandFacade):
        self._completer = completer
        self._facade = facade

    async def extract(self, kind: str, text: str) -> dict:
        spec = self._facade.schema.spec(kind)
        context = ErrorContext(entity_kind=kind, command="extract")
        reply = await self._completer.complete(
            build_prompt(self._facade, kind, text), SYSTEM_PROMPT, context=context,
        )
        payload = parse_reply(reply, context)
        allowed = set(spec.create_model.model_fields) - self._facade.schema.managed_fields(kind)
        dropped = sorted(set(payload) - allowed)
        if dropped:
            logger.info(
                f"Dropped undeclared extracted fields: {', '.join(dropped)}",
                extra={"entity_kind": kind},
            )
        return {k: v for k, v in payload.items() if k in allowed}

    async def extract_and_create(self, kind: str, text: str) -> tuple[dict, CommandResult]:
        payload = await self.extract(kind, text)
        return payload, self._facade.execute(kind, CommandOp.CREATE, payload=payload)
