"""CSV and XLSX export of snapshot collections.  Read-only."""
import csv
import json
from io import BytesIO, StringIO
from typing import Any

from openpyxl import Workbook


def flatten(value: Any) -> Any:
    """Turn a record value into something a CSV or spreadsheet cell accepts."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return value


def _headers(rows: list[dict[str, Any]]) -> list[str]:
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return headers


def to_csv(rows: list[dict[str, Any]]) -> str:
    """Serialise records to CSV, header row first.  Empty input gives ``""``."""
    if not rows:
        return ""
    out = StringIO()
    writer = csv.DictWriter(out, fieldnames=_headers(rows), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: flatten(v) for k, v in row.items()})
    return out.getvalue()


def to_xlsx(sheet_name: str, rows: list[dict[str, Any]]) -> bytes:
    """Serialise records to a single-sheet XLSX workbook."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_name[:31]  # Excel's sheet-title limit
    headers = _headers(rows)
    if headers:
        sheet.append(headers)
        for row in rows:
            sheet.append([flatten(row.get(h)) for h in headers])

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
