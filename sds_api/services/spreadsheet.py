from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "Documents"
TAG_SEPARATOR = ","

# (header, width) in column order; import reads by position
COLUMNS = (
    ("Id", 36),
    ("CompanyCode", 14),
    ("Filename", 40),
    ("ProductName", 30),
    ("Department", 18),
    ("Site", 18),
    ("Tags", 30),
)


class SpreadsheetError(ValueError):
    pass


@dataclass
class MetadataRow:
    id: str
    company_code: Optional[str]
    filename: Optional[str]
    product_name: Optional[str]
    department: Optional[str]
    site: Optional[str]
    tags: list[str]


def _cell_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def tag_problem(tag: str) -> Optional[str]:
    """Why ``tag`` would not survive the Tags column, or None when it does."""
    if not tag.strip():
        return "tags must not be empty"
    if tag != tag.strip():
        return "tags must not start or end with whitespace"
    if TAG_SEPARATOR in tag:
        return "tags must not contain commas"
    return None


def join_tags(tags: Iterable[str]) -> str:
    return f"{TAG_SEPARATOR} ".join(tags)


def split_tags(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(TAG_SEPARATOR) if tag.strip()]


def build_workbook(rows: Iterable[Iterable[Any]]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append([header for header, _ in COLUMNS])
    for index, (_, width) in enumerate(COLUMNS):
        sheet.column_dimensions[get_column_letter(index + 1)].width = width
    for row in rows:
        sheet.append(list(row))

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def read_metadata_rows(content: bytes) -> list[MetadataRow]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetError("Unable to read spreadsheet") from exc

    if not workbook.worksheets:
        raise SpreadsheetError("No worksheet found")
    sheet = workbook.worksheets[0]

    rows: list[MetadataRow] = []
    for values in sheet.iter_rows(min_row=2, max_col=len(COLUMNS), values_only=True):
        cells = [_cell_text(value) for value in values]
        cells += [None] * (len(COLUMNS) - len(cells))
        if not cells[0]:
            continue
        rows.append(
            MetadataRow(
                id=cells[0],
                company_code=cells[1],
                filename=cells[2],
                product_name=cells[3],
                department=cells[4],
                site=cells[5],
                tags=split_tags(cells[6]),
            )
        )
    workbook.close()
    return rows
