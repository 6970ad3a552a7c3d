"""Entity Routes — Command Facade and Query API over HTTP.

Invariants:
    - Every mutation goes through CommandFacade.execute (no direct store access)
    - A rejected command is raised as its StoreError; the global handler renders it
    - Routes are async and call the synchronous facade inline: one event loop thread,
      commands never interleave

Design Decisions:
    - Request bodies are plain JSON objects: per-kind validation lives in the domain
      payload models, so the field-level errors come from one place
"""

import logging

from fastapi import APIRouter, Body, Depends, Query, status

from relstore.api.dependencies import get_completer, get_facade, parse_where
from relstore.core.domain_types import CommandOp, SortDirection
from relstore.core.repository_protocols import TextCompleter
from relstore.schemas.entities import (
    CommandResponse, ExtractionRequest, ExtractionResponse, QueryResponse,
)
from relstore.services.command_facade import CommandFacade, CommandResult
from relstore.services.record_extraction import RecordExtractor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/entities", tags=["entities"])


def _committed(result: CommandResult) -> CommandResult:
    if not result.ok:
        raise result.error
    return result


@router.get("/{kind}", response_model=QueryResponse)
async def query_entities(
    kind: str,
    search: str = "",
    where: list[str] = Query(default=[]),
    sort_key: str | None = None,
    sort_dir: SortDirection = SortDirection.ASC,
    facade: CommandFacade = Depends(get_facade),
):
    """Filtered and sorted collection. ?where=status:Active may repeat."""
    items = facade.query(kind, search, parse_where(kind, where), sort_key, sort_dir)
    return QueryResponse(kind=kind, count=len(items), items=items)


@router.get("/{kind}/{entity_id}")
async def get_entity(
    kind: str, entity_id: str, facade: CommandFacade = Depends(get_facade),
):
    return facade.get(kind, entity_id)


@router.post(
    "/{kind}", response_model=CommandResponse, status_code=status.HTTP_201_CREATED,
)
async def create_entity(
    kind: str,
    payload: dict = Body(...),
    facade: CommandFacade = Depends(get_facade),
):
    result = _committed(facade.execute(kind, CommandOp.CREATE, payload=payload))
    return CommandResponse.from_result(result)


@router.patch("/{kind}/{entity_id}", response_model=CommandResponse)
async def update_entity(
    kind: str,
    entity_id: str,
    payload: dict = Body(...),
    facade: CommandFacade = Depends(get_facade),
):
    result = _committed(facade.execute(kind, CommandOp.UPDATE, entity_id, payload))
    return CommandResponse.from_result(result)


@router.delete("/{kind}/{entity_id}", response_model=CommandResponse)
async def delete_entity(
    kind: str, entity_id: str, facade: CommandFacade = Depends(get_facade),
):
    """Delete and cascade; the response lists every dependent touched."""
    result = _committed(facade.execute(kind, CommandOp.DELETE, entity_id))
    return CommandResponse.from_result(result)


@router.post(
    "/{kind}/extract",
    response_model=ExtractionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def extract_entity(
    kind: str,
    body: ExtractionRequest,
    facade: CommandFacade = Depends(get_facade),
    completer: TextCompleter = Depends(get_completer),
):
    """AI extraction round trip, then an ordinary create command."""
    facade.schema.spec(kind)
    extracted, result = await RecordExtractor(completer, facade).extract_and_create(
        kind, body.text,
    )
    _committed(result)
    return ExtractionResponse(
        extracted=extracted, **CommandResponse.from_result(result).model_dump(),
    )
