"""
Tabular file readers producing headers and row dictionaries.

CSV files go through the standard ``csv`` module; Excel workbooks through
openpyxl in read-only mode (first worksheet, first row as headers).
"""

from __future__ import annotations

import csv
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from .errors import FileParseError

CSV_SUFFIXES = (".csv",)
EXCEL_SUFFIXES = (".xlsx", ".xlsm")
SUPPORTED_SUFFIXES = CSV_SUFFIXES + EXCEL_SUFFIXES


@dataclass(slots=True)
class ParsedFile:
    """Headers plus row dictionaries read from one source file."""

    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)
    total_rows: int = 0


def _sanitize_header(value: Any, index: int) -> str:
    text = "" if value is None else str(value)
    text = text.replace("\ufeff", "").strip()
    return text or f"Column_{index + 1}"


def _dedupe_headers(headers: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    result: list[str] = []
    for header in headers:
        count = seen.get(header, 0)
        seen[header] = count + 1
        result.append(header if count == 0 else f"{header}_{count}")
    return result


def _cell_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _iter_csv(path: Path) -> Iterator[list[str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        yield from csv.reader(handle)


def _iter_xlsx(path: Path) -> Iterator[list[str]]:
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as exc:
        raise FileParseError(f"Unable to open workbook {path.name}: {exc}") from exc
    try:
        sheet = workbook.worksheets[0]
        for row in sheet.iter_rows(values_only=True):
            yield [_cell_to_text(value) for value in row]
    finally:
        workbook.close()


def iter_raw_rows(path: str | Path) -> Iterator[list[str]]:
    path = Path(path)
    if not path.exists():
        raise FileParseError(f"Source file not found: {path}")
    suffix = path.suffix.lower()
    if suffix in CSV_SUFFIXES:
        return _iter_csv(path)
    if suffix in EXCEL_SUFFIXES:
        return _iter_xlsx(path)
    raise FileParseError(f"Unsupported file type '{suffix or path.name}'. Use CSV or XLSX.")


def parse_file(path: str | Path, *, max_rows: int | None = None) -> ParsedFile:
    """
    Read ``path`` into headers and row dictionaries.

    Blank rows are skipped. When ``max_rows`` is given only that many rows are
    kept, but ``total_rows`` still counts every non-blank row.
    """

    raw_rows = iter_raw_rows(path)
    try:
        header_row = next(raw_rows)
    except StopIteration:
        raise FileParseError(f"Source file {Path(path).name} is empty.") from None
    except (UnicodeDecodeError, csv.Error) as exc:
        raise FileParseError(f"Unable to read {Path(path).name}: {exc}") from exc

    headers = _dedupe_headers([_sanitize_header(value, index) for index, value in enumerate(header_row)])
    parsed = ParsedFile(headers=headers)
    try:
        for values in raw_rows:
            cells = [value.strip() if isinstance(value, str) else _cell_to_text(value) for value in values]
            if not any(cells):
                continue
            parsed.total_rows += 1
            if max_rows is not None and len(parsed.rows) >= max_rows:
                continue
            padded = cells + [""] * (len(headers) - len(cells))
            parsed.rows.append(dict(zip(headers, padded)))
    except (UnicodeDecodeError, csv.Error) as exc:
        raise FileParseError(f"Unable to read {Path(path).name}: {exc}") from exc
    return parsed
