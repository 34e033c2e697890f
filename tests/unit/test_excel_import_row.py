"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Unit tests for header validation and row access.
"""

import pytest

from etoo.excel_import_row import (
    DuplicateUniqueIdError,
    ExcelImportRow,
    HeaderIndex,
    IncorrectFileError,
    MandatoryField,
    MissingColumnsError,
    validate_unique_ids,
)
from etoo.spreadsheet import SpreadsheetRow
from tests.fixtures.workbooks import HEADER, header_row, import_row, sheet_row


@pytest.mark.unit
class TestHeaderIndex:
    def test_all_columns_found(self):
        index = HeaderIndex.from_header(header_row(["extra"] + HEADER))
        assert index.index_of(MandatoryField.NAME) == 1
        assert index.is_mandatory_column(0) is False
        assert index.is_mandatory_column(1) is True

    def test_missing_columns_are_listed_in_declaration_order(self):
        columns = [c for c in HEADER if c not in ("step_type", "name", "estimated_duration")]
        with pytest.raises(MissingColumnsError) as exc_info:
            HeaderIndex.from_header(header_row(columns))
        assert exc_info.value.missing == ["name", "step_type", "estimated_duration"]
        assert isinstance(exc_info.value, IncorrectFileError)

    def test_header_names_are_trimmed_and_first_occurrence_wins(self):
        columns = [f" {c} " for c in HEADER] + ["name"]
        index = HeaderIndex.from_header(header_row(columns))
        assert index.index_of(MandatoryField.NAME) == 0


@pytest.mark.unit
class TestExcelImportRow:
    def test_getters(self):
        row = import_row(
            number=7,
            unique_id=" 12 ",
            type=" test_manual ",
            name="Login",
            owner="alice@example.com",
            description="   ",
            estimated_duration="12.7",
        )
        assert row.number == 7
        assert row.unique_id == "12"
        assert row.type == "test_manual"
        assert row.name == "Login"
        assert row.owner == "alice@example.com"
        assert row.description is None
        assert row.phase is None
        assert row.estimated_duration == 12
        assert row.is_test_root() is True
        assert row.is_step() is False

    def test_step_row(self):
        row = import_row(type="step", step_type="simple", step_description="Open the page")
        assert row.is_step() is True
        assert row.step_type == "simple"
        assert row.step == "Open the page"

    def test_invalid_estimated_duration(self, caplog):
        row = import_row(unique_id="1", estimated_duration="soon")
        assert row.estimated_duration is None
        assert "Estimated duration left blank" in caplog.text

    def test_short_row_reads_as_blank(self):
        row = ExcelImportRow(SpreadsheetRow(number=2, cells=("x",)), HeaderIndex.from_header(header_row()))
        assert row.name == "x"
        assert row.covered_content is None


@pytest.mark.unit
class TestValidateUniqueIds:
    def test_duplicate_unique_id(self):
        header = HeaderIndex.from_header(header_row())
        rows = [
            sheet_row(2, {"unique_id": "1"}),
            sheet_row(3, {"unique_id": "2"}),
            sheet_row(4, {"unique_id": " 1"}),
        ]
        with pytest.raises(DuplicateUniqueIdError) as exc_info:
            validate_unique_ids(rows, header)
        assert exc_info.value.row_number == 4
        assert exc_info.value.unique_id == "1"

    def test_blank_unique_ids_are_ignored(self):
        header = HeaderIndex.from_header(header_row())
        rows = [sheet_row(2, {"name": "a"}), sheet_row(3, {"name": "b"})]
        validate_unique_ids(rows, header)
