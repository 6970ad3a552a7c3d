"""Record Transfer — CSV / JSON import and export of one entity kind.

Invariants:
    - Import decodes and normalizes the whole document into a staging buffer first;
      nothing reaches the store until staging is complete
    - A row that fails decoding or normalization is skipped and reported with its row number
    - Every staged row is submitted as an ordinary create command; rejections
      (referential, uniqueness) are reported per row, the rest still commit
    - Export reflects the live collection (optionally queried), back-references included

Design Decisions:
    - `id` and back-reference columns in imported files are ignored: exported files
      re-import as new records without hand editing
"""

import logging
import typing
from dataclasses import dataclass, field

from relstore.core.domain_types import CommandOp, SortDirection, TransferFormat
from relstore.core.errors import DecodeError, PayloadValidationError, StoreError
from relstore.core.payloads import normalize_create
from relstore.core.record_codec import decode_csv, decode_json, encode_csv, encode_json
from relstore.services.command_facade import CommandFacade

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    kind: str
    created: list[str] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "created": self.created,
            "created_count": len(self.created),
            "skipped": self.skipped,
            "skipped_count": len(self.skipped),
            "warnings": self.warnings,
        }


def list_fields(facade: CommandFacade, kind: str) -> frozenset[str]:
    """Fields whose values are id or text lists (comma-joined in CSV)."""
    spec = facade.schema.spec(kind)
    declared = {
        name for name, info in spec.create_model.model_fields.items()
        if typing.get_origin(info.annotation) is list
    }
    return frozenset(declared | facade.schema.managed_fields(kind))


def export_columns(facade: CommandFacade, kind: str) -> list[str]:
    spec = facade.schema.spec(kind)
    managed = [r.field for r in facade.schema.back_refs_of_parent(kind)]
    return ["id", *spec.create_model.model_fields, *managed]


def import_records(
    facade: CommandFacade, kind: str, text: str, fmt: TransferFormat | str,
) -> ImportReport:
    """Decode, stage and submit a document; raises DecodeError only for unreadable documents."""
    fmt = TransferFormat(fmt)
    if fmt == TransferFormat.CSV:
        rows, decode_errors = decode_csv(text, list_fields(facade, kind))
    else:
        rows, decode_errors = decode_json(text)

    report = ImportReport(kind=kind)
    for error in decode_errors:
        report.skipped.append(_skip_entry(error.row, error))

    ignored = {"id"} | facade.schema.managed_fields(kind)
    staged: list[tuple[int, dict]] = []
    for row, raw in rows:
        payload = {k: v for k, v in raw.items() if k not in ignored}
        try:
            staged.append((row, normalize_create(facade.schema, kind, payload)))
        except PayloadValidationError as e:
            report.skipped.append(_skip_entry(
                row, DecodeError(e.message, row=row, details=e.details),
            ))

    for row, payload in staged:
        result = facade.execute(kind, CommandOp.CREATE, payload=payload)
        if result.ok:
            report.created.append(result.entity_id)
        else:
            report.skipped.append(_skip_entry(row, result.error))
        report.warnings.extend(w.message for w in result.warnings)

    logger.info(
        f"Imported {len(report.created)} {kind} record(s), skipped {len(report.skipped)}",
        extra={"entity_kind": kind, "command": "import"},
    )
    return report


def export_records(
    facade: CommandFacade,
    kind: str,
    fmt: TransferFormat | str,
    search: str = "",
    filters: dict | None = None,
    sort_key: str | None = None,
    sort_dir: SortDirection | str = SortDirection.ASC,
) -> str:
    records = facade.query(kind, search, filters, sort_key, sort_dir)
    if TransferFormat(fmt) == TransferFormat.CSV:
        return encode_csv(records, export_columns(facade, kind))
    return encode_json(records)


def _skip_entry(row: int | None, error: StoreError) -> dict:
    return {
        "row": row,
        "code": error.code,
        "message": error.message,
        "details": error.details,
    }
