"""
Export of gathered worklog records.

Three output formats are supported:
- csv: header plus one bare comma-joined line per record. Values are NOT
  quoted or escaped, so a comma, quote or newline inside a text field breaks
  the row structure. This is the historical file layout.
- csv-quoted: same columns written through pandas with standard CSV quoting.
- xlsx: same columns in a single worksheet (openpyxl engine).

File names come from the local time of the call (YYYY-MM-DD_HH-MM-SS), so two
exports within the same second target the same file.
"""
from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Iterable, List

import jdatetime
import pandas as pd
from dateutil import parser as date_parser

from .models import COLS, WorklogRecord

OUTPUT_FORMATS = ("csv", "csv-quoted", "xlsx")
SHEET_NAME = "Worklogs"


class ExportError(OSError):
    """Raised when the export file cannot be created or written."""


def format_number(value: Any) -> str:
    """Render a number without a trailing '.0' for whole values (2, 90, 1.02)."""
    f = float(value)
    if f.is_integer():
        return str(int(f))
    return repr(f)


def convert_date(value: str) -> str:
    """Rewrite a Gregorian date string as YYYY/MM/DD in the Persian calendar.

    Values that do not parse as a date are returned unchanged.
    """
    try:
        parsed = date_parser.parse(value)
        jd = jdatetime.date.fromgregorian(date=parsed.date())
    except (ValueError, OverflowError, TypeError):
        return value
    return f"{jd.year}/{jd.month:02d}/{jd.day:02d}"


def default_out_name(output_format: str = "csv") -> str:
    """Timestamped file name, e.g. 2024-03-05_10-15-30.csv."""
    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    ext = ".xlsx" if output_format == "xlsx" else ".csv"
    return f"{ts}{ext}"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


def _rows(records: Iterable[WorklogRecord], convert_dates: bool) -> List[List[Any]]:
    rows = []
    for rec in records:
        row = rec.as_row()
        if convert_dates:
            row[0] = convert_date(row[0])
        rows.append(row)
    return rows


def _write_bare_csv(path: str, rows: List[List[Any]]) -> None:
    lines = [",".join(COLS)]
    lines.extend(",".join(_cell(v) for v in row) for row in rows)
    with open(path, "w", encoding="utf-8-sig", newline="") as fh:
        fh.write("\n".join(lines) + "\n")


def export_records(records: Iterable[WorklogRecord], convert_dates: bool = False,
                   output_format: str = "csv", out_dir: str = ".") -> str:
    """Write records to a timestamp-named file in out_dir and return its path.

    Args:
        records: Worklog records, written in the given order.
        convert_dates: Rewrite the Register Date column into the Persian calendar.
        output_format: One of OUTPUT_FORMATS.
        out_dir: Destination directory (created if missing).

    Raises:
        ValueError: Unknown output_format.
        ExportError: The destination could not be created or written.
    """
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unknown output format: {output_format!r}")

    rows = _rows(records, convert_dates)
    out_dir = out_dir or "."
    path = default_out_name(output_format)
    if out_dir != ".":
        path = os.path.join(out_dir, path)
    try:
        os.makedirs(out_dir, exist_ok=True)
        if output_format == "csv":
            _write_bare_csv(path, rows)
        elif output_format == "csv-quoted":
            df = pd.DataFrame([[_cell(v) for v in row] for row in rows], columns=COLS)
            df.to_csv(path, index=False, encoding="utf-8-sig")
        else:
            df = pd.DataFrame(rows, columns=COLS)
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                df.to_excel(writer, index=False, sheet_name=SHEET_NAME)
    except OSError as e:
        raise ExportError(f"Error in saving file: {e}") from e
    return path
