"""
CSV import parsing and export.

Import parses text into row dicts for ActionGateway.import_rows. Export
writes records back out, one column per field with `id` first, values
stringified the way the text search sees them.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence

from backend.models.gateway import GatewayFailure, GatewaySuccess
from engine.recordsync.types import Record
from engine.recordsync.views import stringify

NO_RECORDS = "There are no records to export."


class CsvFormatError(ValueError):
    """The uploaded text is not a CSV with a header row."""


def parse_csv(text: str) -> list[dict[str, str]]:
    """
    Header row → keys. Header names are trimmed; cells are kept as written.
    Lines with no cells at all are skipped by the reader; rows of empty
    cells are kept so row numbers in import errors match the file.
    """
    text = text.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames or not any(name.strip() for name in reader.fieldnames):
        raise CsvFormatError("CSV file has no header row")
    rows: list[dict[str, str]] = []
    for raw in reader:
        row = {}
        for key, value in raw.items():
            # Cells past the header land under None
            if key is None:
                continue
            row[key.strip()] = value if value is not None else ""
        rows.append(row)
    return rows


def export_columns(records: Sequence[Record]) -> list[str]:
    columns = ["id"]
    seen = {"id"}
    for record in records:
        for name in record.fields:
            if name not in seen:
                seen.add(name)
                columns.append(name)
    return columns


def export_csv(records: Iterable[Record], columns: Sequence[str] | None = None) -> GatewaySuccess | GatewayFailure:
    items = list(records)
    if not items:
        return GatewayFailure(error=NO_RECORDS)

    header = list(columns) if columns else export_columns(items)
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(header)
    for record in items:
        writer.writerow([stringify(record.get(name)) for name in header])
    return GatewaySuccess(data=out.getvalue())
