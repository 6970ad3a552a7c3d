"""Record Codec — CSV / JSON translation at the import-export boundary.

Invariants:
    - Decoding never touches the store: output is a staging list of (row_number, dict)
    - A malformed record becomes a DecodeError for that row; the rest still decode
    - A document that cannot be parsed at all raises DecodeError (nothing staged)
    - List fields travel through CSV as comma-separated text ("m1, m2")
    - Empty CSV cells are omitted so payload defaults apply

Design Decisions:
    - pandas for CSV: quoting and bad-line detection come from the parser;
      dtype=str keeps type coercion in the pydantic payload models
    - CSV row numbers count records from 1 with the header as row 1. Lines with too many
      fields keep their slot as a placeholder row, so later numbers stay aligned
    - Blank and all-empty rows carry nothing to import and are skipped silently
"""

import io
import json

import pandas as pd

from relstore.core.domain_types import Record
from relstore.core.errors import DecodeError

StagedRow = tuple[int, dict]

_RAGGED = "\x00ragged"


# --- Decode -------------------------------------------------------------------

def decode_csv(
    text: str, list_fields: frozenset[str] = frozenset(),
) -> tuple[list[StagedRow], list[DecodeError]]:
    """Parse CSV text into staged rows plus per-row decode errors."""
    if not text.strip():
        return [], []
    text = text.lstrip("\r\n")
    try:
        columns = [
            str(c).strip()
            for c in pd.read_csv(io.StringIO(text), nrows=0, engine="python").columns
        ]
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        raise DecodeError(f"Unreadable CSV document: {e}")
    if any(not c or c.startswith("Unnamed:") for c in columns):
        raise DecodeError("CSV header has empty column names")

    bad_lines: list[list[str]] = []

    def _hold_place(line: list[str]) -> list[str]:
        bad_lines.append(line)
        return [_RAGGED] + [""] * (len(columns) - 1)

    try:
        # header parsed as data row 0 so no data line can be mistaken for index names
        frame = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=columns,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            skip_blank_lines=False,
            engine="python",
            on_bad_lines=_hold_place,
        )
    except (pd.errors.ParserError, ValueError) as e:
        raise DecodeError(f"Unreadable CSV document: {e}")

    errors: list[DecodeError] = []
    staged: list[StagedRow] = []
    ragged = iter(bad_lines)
    for offset, raw in enumerate(frame.itertuples(index=False, name=None)):
        if offset == 0:
            continue
        row_number = offset + 1
        if raw[0] == _RAGGED:
            line = next(ragged)
            errors.append(DecodeError(
                f"Malformed CSV line ({len(line)} fields, expected {len(columns)})",
                row=row_number,
                details=[{"field": "__line__", "reason": ",".join(line)}],
            ))
            continue
        record = {}
        for column, cell in zip(columns, raw):
            if pd.isna(cell) or str(cell).strip() == "":
                continue
            value = str(cell).strip()
            if column in list_fields:
                record[column] = [part.strip() for part in value.split(",") if part.strip()]
            else:
                record[column] = value
        if record:
            staged.append((row_number, record))
    return staged, errors


def decode_json(text: str) -> tuple[list[StagedRow], list[DecodeError]]:
    """Parse a JSON array of objects into staged rows plus per-item errors."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON document: {e.msg} (line {e.lineno})")
    if isinstance(document, dict):
        document = [document]
    if not isinstance(document, list):
        raise DecodeError("JSON document must be an array of objects")

    staged: list[StagedRow] = []
    errors: list[DecodeError] = []
    for position, item in enumerate(document, start=1):
        if not isinstance(item, dict):
            errors.append(DecodeError(
                f"Item {position} is {type(item).__name__}, expected object",
                row=position,
            ))
            continue
        staged.append((position, item))
    return staged, errors


# --- Encode -------------------------------------------------------------------

def encode_csv(records: list[Record], columns: list[str]) -> str:
    rows = [
        {
            name: ", ".join(str(v) for v in value) if isinstance(value, list) else value
            for name, value in ((c, record.get(c)) for c in columns)
        }
        for record in records
    ]
    return pd.DataFrame(rows, columns=columns).to_csv(index=False)


def encode_json(records: list[Record]) -> str:
    return json.dumps(records, indent=2, ensure_ascii=False)
