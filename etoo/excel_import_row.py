"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Row access by column name.

This module defines the mandatory columns of an import file, the header index
that maps them to column positions and the row wrapper exposing one typed
getter per mandatory column.
"""

import logging
from collections.abc import Iterable
from enum import Enum

from etoo.octane_models import MANUAL_TEST_TYPE, STEP_TYPE
from etoo.spreadsheet import SpreadsheetRow

logger = logging.getLogger("etoo.excel_import_row")


class IncorrectFileError(Exception):
    """Raised when the import file does not have the expected structure."""


class MissingColumnsError(IncorrectFileError):
    """Raised when the header lacks one or more mandatory columns."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"The following mandatory columns are missing: {', '.join(missing)}")


class DuplicateUniqueIdError(IncorrectFileError):
    """Raised when two rows share the same unique id."""

    def __init__(self, row_number: int, unique_id: str):
        self.row_number = row_number
        self.unique_id = unique_id
        super().__init__(
            f"The unique_id column is not valid! Row {row_number} has unique id "
            f"{unique_id}, which is duplicated."
        )


class MandatoryField(str, Enum):
    """Columns every import file must have, in declaration order."""

    NAME = "name"
    TYPE = "type"
    OWNER = "owner"
    PHASE = "phase"
    USER_TAGS = "user_tags"
    DESIGNER = "designer"
    STEP_TYPE = "step_type"
    UNIQUE_ID = "unique_id"
    TEST_TYPE = "test_type"
    DESCRIPTION = "description"
    PRODUCT_AREAS = "product_areas"
    COVERED_CONTENT = "covered_content"
    STEP_DESCRIPTION = "step_description"
    ESTIMATED_DURATION = "estimated_duration"

    @classmethod
    def names(cls) -> list[str]:
        return [member.value for member in cls]


class HeaderIndex:
    """Maps each mandatory column to its index in the header row."""

    def __init__(self, indexes: dict[MandatoryField, int]):
        self._indexes = dict(indexes)

    @classmethod
    def from_header(cls, header: SpreadsheetRow) -> "HeaderIndex":
        """
        Build the index from the header row.

        The first occurrence of a duplicated column name wins.

        Raises
        ------
            MissingColumnsError: If any mandatory column is absent, listing all of them

        """
        positions: dict[str, int] = {}
        for index, cell in enumerate(header.cells):
            if cell is not None:
                positions.setdefault(cell.strip(), index)

        indexes = {}
        missing = []
        for field in MandatoryField:
            if field.value in positions:
                indexes[field] = positions[field.value]
            else:
                missing.append(field.value)

        if missing:
            raise MissingColumnsError(missing)
        return cls(indexes)

    def index_of(self, field: MandatoryField) -> int:
        return self._indexes[field]

    def is_mandatory_column(self, index: int) -> bool:
        return index in self._indexes.values()


class ExcelImportRow:
    """One data row read through the header index."""

    def __init__(self, row: SpreadsheetRow, header: HeaderIndex):
        self.row = row
        self.header = header

    @property
    def number(self) -> int:
        return self.row.number

    def get(self, field: MandatoryField) -> str | None:
        """Return the cell text of ``field``, or None when the cell is blank or missing."""
        value = self.row.cell(self.header.index_of(field))
        if value is None or not value.strip():
            return None
        return value

    @property
    def unique_id(self) -> str | None:
        value = self.get(MandatoryField.UNIQUE_ID)
        return value.strip() if value is not None else None

    @property
    def type(self) -> str | None:
        value = self.get(MandatoryField.TYPE)
        return value.strip() if value is not None else None

    @property
    def name(self) -> str | None:
        return self.get(MandatoryField.NAME)

    @property
    def step_type(self) -> str | None:
        return self.get(MandatoryField.STEP_TYPE)

    @property
    def step(self) -> str | None:
        return self.get(MandatoryField.STEP_DESCRIPTION)

    @property
    def test_type(self) -> str | None:
        return self.get(MandatoryField.TEST_TYPE)

    @property
    def application_modules(self) -> str | None:
        return self.get(MandatoryField.PRODUCT_AREAS)

    @property
    def covered_content(self) -> str | None:
        return self.get(MandatoryField.COVERED_CONTENT)

    @property
    def designer(self) -> str | None:
        return self.get(MandatoryField.DESIGNER)

    @property
    def description(self) -> str | None:
        return self.get(MandatoryField.DESCRIPTION)

    @property
    def owner(self) -> str | None:
        return self.get(MandatoryField.OWNER)

    @property
    def phase(self) -> str | None:
        return self.get(MandatoryField.PHASE)

    @property
    def user_tags(self) -> str | None:
        return self.get(MandatoryField.USER_TAGS)

    @property
    def estimated_duration(self) -> int | None:
        """Estimated duration as an integer, truncating decimal text."""
        value = self.get(MandatoryField.ESTIMATED_DURATION)
        if value is None:
            return None
        try:
            return int(float(value.strip()))
        except (ValueError, OverflowError) as e:
            logger.warning(
                f"Error converting cell value to number at row {self.number} "
                f"(unique id {self.unique_id}): {e}. Estimated duration left blank."
            )
            return None

    def is_test_root(self) -> bool:
        return self.type == MANUAL_TEST_TYPE

    def is_step(self) -> bool:
        return self.type == STEP_TYPE


def validate_unique_ids(rows: Iterable[SpreadsheetRow], header: HeaderIndex) -> None:
    """
    Check that no two data rows share a unique id.

    Blank unique ids are ignored.

    Raises
    ------
        DuplicateUniqueIdError: Naming the first row that repeats an id

    """
    seen: set[str] = set()
    for row in rows:
        unique_id = ExcelImportRow(row, header).unique_id
        if unique_id is None:
            continue
        if unique_id in seen:
            raise DuplicateUniqueIdError(row.number, unique_id)
        seen.add(unique_id)
