"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Step script assembly.

The rows following a manual test root row are its steps. They are collected
until the next root row and rendered into the Octane script format, one line
per step::

    - simple step\\n- ?validation step\\n- @1042\\n

where ``\\n`` is the literal two-character sequence expected inside the JSON
body of the script upload.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from etoo.excel_import_row import ExcelImportRow

logger = logging.getLogger("etoo.step_assembler")

LINE_TERMINATOR = "\\n"

SCRIPT_BODY_TEMPLATE = '{"script":"%s","comment":"","revision_type":"Minor"}'

_NEWLINES = re.compile(r"[\r\n]+")


class StepType(str, Enum):
    SIMPLE = "simple"
    VALIDATION = "validation"
    CALL = "call"

    @classmethod
    def parse(cls, value: str | None) -> "StepType | None":
        """Match a step type cell case-insensitively; None when unknown."""
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class AssemblerState(str, Enum):
    COLLECTING = "collecting"
    DONE = "done"


def escape_meta_characters(text: str) -> str:
    """Escape quotes and turn line breaks into the literal ``\\n`` sequence."""
    text = text.replace("\t\n", "")
    text = text.replace('"', '\\"').replace("'", "\\'")
    return _NEWLINES.sub(lambda _: LINE_TERMINATOR, text)


@dataclass
class StepScript:
    """Script lines of one test and the number of step rows that were skipped."""

    lines: list[str] = field(default_factory=list)
    failed_steps: int = 0

    @property
    def text(self) -> str:
        return "".join(self.lines)

    @property
    def step_count(self) -> int:
        return len(self.lines)

    def is_empty(self) -> bool:
        return not self.lines


def build_script_body(script: StepScript | str) -> str:
    """Return the JSON body of a script upload; the script is embedded as is."""
    text = script.text if isinstance(script, StepScript) else script
    return SCRIPT_BODY_TEMPLATE % text


class StepAssembler:
    """
    Collects the step rows that follow a root row.

    Call steps reference tests by spreadsheet unique id and resolve only to
    tests already present in ``migrated_tests_ids``, i.e. tests that appear
    earlier in the sheet and were created successfully.
    """

    def __init__(self, migrated_tests_ids: Mapping[str, str]):
        self.migrated_tests_ids = migrated_tests_ids

    def collect(self, rows: Sequence[ExcelImportRow], start: int = 0) -> tuple[StepScript, int]:
        """
        Collect steps from ``rows[start]`` up to the next root row.

        Returns
        -------
            The script and the index of the next root row (``len(rows)`` when
            the rows are exhausted)

        """
        script = StepScript()
        index = start
        state = AssemblerState.COLLECTING

        while state is AssemblerState.COLLECTING:
            if index >= len(rows) or rows[index].is_test_root():
                state = AssemblerState.DONE
                continue

            row = rows[index]
            index += 1
            if not row.is_step():
                logger.error(
                    f"Row {row.number} with unique id \"{row.unique_id}\" has "
                    f"{'no type' if row.type is None else f'the wrong type {row.type!r}'} "
                    f"and will not be migrated"
                )
                script.failed_steps += 1
                continue

            line = self.format_step(row)
            if line is None:
                script.failed_steps += 1
            else:
                script.lines.append(line)

        return script, index

    def format_step(self, row: ExcelImportRow) -> str | None:
        """Render one step row, or return None (after logging) when it is unusable."""
        step_type = StepType.parse(row.step_type)
        if step_type is None:
            logger.warning(
                f"For the entry with unique_id \"{row.unique_id}\" the step type is not valid. "
                f"Step type value: \"{row.step_type}\""
            )
            return None

        text = row.step
        if text is None:
            logger.warning(f"Step at row {row.number} has no description and is skipped")
            return None

        match step_type:
            case StepType.SIMPLE:
                return f"- {escape_meta_characters(text)}{LINE_TERMINATOR}"
            case StepType.VALIDATION:
                return f"- ?{escape_meta_characters(text)}{LINE_TERMINATOR}"
            case StepType.CALL:
                test_id = self.migrated_tests_ids.get(text.strip())
                if test_id is None:
                    logger.warning(
                        f"For the entry with unique id \"{row.unique_id}\" the call step for id "
                        f"\"{text.strip()}\" could not be found and will be ignored"
                    )
                    return None
                return f"- @{test_id}{LINE_TERMINATOR}"
        return None


def skip_span(rows: Sequence[ExcelImportRow], start: int) -> int:
    """Return the index of the first root row at or after ``start``."""
    index = start
    while index < len(rows) and not rows[index].is_test_root():
        index += 1
    return index
