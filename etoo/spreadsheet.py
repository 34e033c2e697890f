"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Spreadsheet adapter.

Reads the first sheet of an ``.xlsx`` workbook into immutable rows of cell
text. The first row is the header, the following rows are data.
"""

import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger("etoo.spreadsheet")

# Text format of date cells, identical to the format accepted by date UDFs
CELL_DATE_FORMAT = "%d-%m-%Y %H:%M:%S"


class SpreadsheetError(Exception):
    """Raised when a workbook cannot be opened or read."""


@dataclass(frozen=True)
class SpreadsheetRow:
    """One sheet row: its 1-based row number and the text of its cells."""

    number: int
    cells: tuple[str | None, ...]

    def cell(self, index: int) -> str | None:
        """Return the text at ``index``, or None when the row is shorter."""
        if 0 <= index < len(self.cells):
            return self.cells[index]
        return None

    def is_blank(self) -> bool:
        return all(cell is None for cell in self.cells)


@dataclass(frozen=True)
class Sheet:
    """Header row (None for an empty sheet) and the data rows below it."""

    header: SpreadsheetRow | None
    rows: list[SpreadsheetRow] = field(default_factory=list)


def cell_text(value: Any) -> str | None:
    """
    Render a cell value as text.

    Integral numbers lose their ``.0``, dates use :data:`CELL_DATE_FORMAT`
    and blank or whitespace-only cells become None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, datetime):
        return value.strftime(CELL_DATE_FORMAT)
    if isinstance(value, date):
        return datetime.combine(value, time()).strftime(CELL_DATE_FORMAT)
    text = str(value)
    return text if text.strip() else None


def read_sheet(path: Path | str) -> Sheet:
    """
    Read the first sheet of the workbook at ``path``.

    Fully blank rows are skipped.

    Raises
    ------
        SpreadsheetError: If the file is missing or is not a readable workbook

    """
    path = Path(path)
    if not path.exists():
        raise SpreadsheetError(f"Spreadsheet not found: {path}")

    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise SpreadsheetError(f"Unable to open spreadsheet {path}: {e}") from e

    try:
        if not workbook.worksheets:
            raise SpreadsheetError(f"Spreadsheet {path} has no sheet")
        sheet = workbook.worksheets[0]

        header: SpreadsheetRow | None = None
        rows: list[SpreadsheetRow] = []
        for number, values in enumerate(sheet.iter_rows(values_only=True), start=1):
            row = SpreadsheetRow(number=number, cells=tuple(cell_text(value) for value in values))
            if row.is_blank():
                continue
            if header is None:
                header = row
            else:
                rows.append(row)
    finally:
        workbook.close()

    logger.info(f"Read {len(rows)} data rows from {path.name}")
    return Sheet(header=header, rows=rows)
