"""Transfer Routes — CSV / JSON import and export per entity kind.

Invariants:
    - Import takes the raw request body; an unreadable document is a 400 and
      commits nothing
    - Partially bad documents return 200 with per-row skip reasons
    - Export streams back the queried collection as an attachment
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from relstore.api.dependencies import get_facade, parse_where
from relstore.core.domain_types import SortDirection, TransferFormat
from relstore.core.errors import DecodeError, ErrorContext
from relstore.services.command_facade import CommandFacade
from relstore.services.record_transfer import export_records, import_records

router = APIRouter(prefix="/api/v1/transfer", tags=["transfer"])

_MEDIA_TYPES = {
    TransferFormat.CSV: "text/csv",
    TransferFormat.JSON: "application/json",
}


@router.post("/{kind}/import")
async def import_kind(
    kind: str,
    request: Request,
    fmt: TransferFormat = TransferFormat.CSV,
    facade: CommandFacade = Depends(get_facade),
):
    facade.schema.spec(kind)
    raw = await request.body()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise DecodeError(
            "Document is not UTF-8 text",
            context=ErrorContext(entity_kind=kind, command="import"),
        )
    return import_records(facade, kind, text, fmt).to_dict()


@router.get("/{kind}/export")
async def export_kind(
    kind: str,
    fmt: TransferFormat = TransferFormat.CSV,
    search: str = "",
    where: list[str] = Query(default=[]),
    sort_key: str | None = None,
    sort_dir: SortDirection = SortDirection.ASC,
    facade: CommandFacade = Depends(get_facade),
):
    body = export_records(
        facade, kind, fmt, search, parse_where(kind, where), sort_key, sort_dir,
    )
    return Response(
        content=body,
        media_type=_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{kind}.{fmt.value}"'},
    )
