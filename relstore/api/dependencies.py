"""Route Dependencies — access to process-wide objects held on app.state.

Invariants:
    - The facade and completer are created once in the lifespan, never per request
    - Tests replace them by assigning app.state attributes directly
"""

from fastapi import Request

from relstore.core.errors import ErrorContext, PayloadValidationError, field_issue
from relstore.core.repository_protocols import TextCompleter
from relstore.services.command_facade import CommandFacade


def get_facade(request: Request) -> CommandFacade:
    facade = getattr(request.app.state, "facade", None)
    if facade is None:
        raise RuntimeError("Store not initialized")
    return facade


def get_completer(request: Request) -> TextCompleter:
    completer = getattr(request.app.state, "completer", None)
    if completer is None:
        raise RuntimeError("Text completer not initialized")
    return completer


def parse_where(kind: str, where: list[str]) -> dict[str, str]:
    """Repeated ?where=field:value pairs -> filter mapping."""
    filters: dict[str, str] = {}
    problems = []
    for item in where:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            problems.append(field_issue("where", f"'{item}' is not field:value"))
            continue
        filters[name.strip()] = value.strip()
    if problems:
        raise PayloadValidationError(
            "Invalid filter", problems, ErrorContext(entity_kind=kind, command="query"),
        )
    return filters
