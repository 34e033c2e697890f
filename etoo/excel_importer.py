"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Migration driver.

The importer reads the spreadsheet, builds the lookup cache and then walks the
rows as a state machine: every root row becomes a manual test in Octane and the
step rows below it become the test's script. A test that cannot be created is
counted as failed and its steps are skipped; the run continues with the next
root row.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from etoo.core.config import ImportConfig
from etoo.core.logging import log_operation
from etoo.entity_model import EntityModelBuilder
from etoo.excel_import_row import (
    ExcelImportRow,
    HeaderIndex,
    IncorrectFileError,
    validate_unique_ids,
)
from etoo.lookup_cache import LookupCache, LookupInitError, LookupStage
from etoo.migration_status import MigrationSummary, Status, compute_status
from etoo.octane_client import OctaneClient
from etoo.octane_models import MANUAL_TESTS
from etoo.reference_resolver import ABANDON, ReferenceResolver
from etoo.run_context import RunContext
from etoo.spreadsheet import Sheet, SpreadsheetError, read_sheet
from etoo.step_assembler import StepAssembler, skip_span
from etoo.udf_handler import UDFHandler
from etoo.upload_pool import StepUploadPool

logger = logging.getLogger("etoo.excel_importer")

ClientFactory = Callable[[], OctaneClient]

_STAGE_STATUS = {
    LookupStage.ENTITIES: Status.INIT_ENTITIES_FAILED,
    LookupStage.PHASES: Status.INIT_PHASES_FAILED,
    LookupStage.USER_TAGS: Status.INIT_USER_TAGS_FAILED,
}


class ImporterState(str, Enum):
    AWAITING_ROOT = "awaiting_root"
    BUILDING_TEST = "building_test"
    FAILED_ROW = "failed_row"
    DONE = "done"


class ManualTestBuildError(Exception):
    """Raised when a manual test entity cannot be assembled from its row."""


@dataclass
class FileReport:
    """Structure of an import file, as checked without contacting Octane."""

    path: Path
    data_rows: int = 0
    test_roots: int = 0
    steps: int = 0
    other_rows: int = 0
    udf_columns: list[str] = field(default_factory=list)


class ExcelImporter:
    """Imports the manual tests of one spreadsheet into Octane."""

    def __init__(
        self,
        settings: ImportConfig,
        client_factory: ClientFactory,
        udf_handler: UDFHandler | None = None,
    ):
        """
        Initialize the importer.

        Args:
            settings: Import run configuration
            client_factory: Returns an authenticated Octane client
            udf_handler: UDF handler (default: from ``settings.udf_config_path``)
        """
        self.settings = settings
        self.client_factory = client_factory
        self.udf_handler = udf_handler or UDFHandler.from_config(settings.udf_config_path)
        self.sheet: Sheet | None = None
        self.context: RunContext | None = None
        self.init_status: Status | None = None
        self.summary: MigrationSummary | None = None

    def init(self) -> Status:
        """Read the sheet, connect to Octane and build the lookup cache."""
        self.init_status = self._init()
        if self.init_status is Status.INIT_SUCCESS:
            logger.info("Initialization done")
        else:
            logger.error(f"Initialization failed: {self.init_status.value}")
        return self.init_status

    def _init(self) -> Status:
        logger.info("Initializing sheet...")
        try:
            self.sheet = read_sheet(self.settings.file_path)
        except SpreadsheetError as e:
            logger.error(f"Error initializing sheet: {e}")
            return Status.INIT_SHEET_FAILED

        logger.info("Initializing Octane...")
        try:
            client = self.client_factory()
        except Exception as e:
            logger.error(f"Error initializing Octane: {type(e).__name__}: {e}")
            return Status.INIT_OCTANE_FAILED

        logger.info("Getting necessary entities from Octane...")
        try:
            cache = LookupCache.build(client, self.settings)
        except LookupInitError as e:
            logger.error(f"Error getting {e.stage.value} from Octane: {e.cause}")
            client.close()
            return _STAGE_STATUS[e.stage]

        self.context = RunContext(settings=self.settings, client=client, cache=cache)
        return Status.INIT_SUCCESS

    def migrate(self) -> Status:
        """
        Import every test of the sheet.

        Returns
        -------
            The final status; counters are available in :attr:`summary`

        """
        if self.init_status is not Status.INIT_SUCCESS or self.context is None:
            logger.error("Cannot start migration! Initialization did not succeed")
            return self._finish(Status.CANNOT_MIGRATE)

        sheet = self.sheet
        if sheet.header is None:
            logger.error("The worksheet is empty. Please provide a correct worksheet!")
            return self._finish(Status.EMPTY_FILE)

        try:
            header = HeaderIndex.from_header(sheet.header)
            validate_unique_ids(sheet.rows, header)
        except IncorrectFileError as e:
            logger.error(f"The file is not correct: {e}")
            return self._finish(Status.INCORRECT_FILE)

        if not sheet.rows:
            logger.error("There are no tests in the given worksheet. Please provide a correct worksheet!")
            return self._finish(Status.EMPTY_FILE)

        self.udf_handler.init_column_indexes(sheet.header)
        rows = [ExcelImportRow(row, header) for row in sheet.rows]

        with log_operation(logger, "migration", context={"rows": len(rows)}):
            self._run(rows)

        status = compute_status(self.context.status)
        counters = self.context.status.snapshot()
        logger.info(
            f"Migration finished with status {status.value}: "
            + ", ".join(f"{name}={value}" for name, value in counters.items())
        )
        return self._finish(status)

    def _run(self, rows: list[ExcelImportRow]) -> None:
        context = self.context
        resolver = ReferenceResolver(context)
        assembler = StepAssembler(context.migrated_tests_ids)
        pool = StepUploadPool(
            context.client,
            context.status,
            max_workers=self.settings.upload_workers,
            error_tracker=context.error_tracker,
        )

        state = ImporterState.AWAITING_ROOT
        index = 0
        error: Exception | None = None
        try:
            while state is not ImporterState.DONE:
                match state:
                    case ImporterState.AWAITING_ROOT:
                        if index >= len(rows):
                            state = ImporterState.DONE
                        elif rows[index].is_test_root():
                            state = ImporterState.BUILDING_TEST
                        else:
                            row = rows[index]
                            logger.error(
                                f"Row {row.number} with unique id \"{row.unique_id}\" is not part "
                                f"of a test and will not be migrated"
                            )
                            context.status.add_failed_steps()
                            index += 1

                    case ImporterState.BUILDING_TEST:
                        row = rows[index]
                        try:
                            test_id = self._create_test(row, resolver)
                        except Exception as e:
                            error = e
                            state = ImporterState.FAILED_ROW
                            continue

                        script, index = assembler.collect(rows, index + 1)
                        if script.failed_steps:
                            context.status.add_failed_steps(script.failed_steps)
                        if not script.is_empty():
                            pool.submit(test_id, script)
                        state = ImporterState.AWAITING_ROOT

                    case ImporterState.FAILED_ROW:
                        row = rows[index]
                        context.status.add_failed_test()
                        context.error_tracker.add_error(
                            error, {"unique_id": row.unique_id, "row": row.number}, log=False
                        )
                        logger.error(
                            f"Error creating manual test with unique_id \"{row.unique_id}\": "
                            f"{type(error).__name__}: {error}"
                        )
                        next_root = skip_span(rows, index + 1)
                        if next_root > index + 1:
                            logger.warning(
                                f"{next_root - index - 1} step rows of test \"{row.unique_id}\" skipped"
                            )
                        index = next_root
                        error = None
                        state = ImporterState.AWAITING_ROOT
        finally:
            pool.drain()

    def _create_test(self, row: ExcelImportRow, resolver: ReferenceResolver) -> str:
        """Resolve, build and create the test of a root row; return its remote id."""
        resolved = resolver.resolve(row)
        if resolved is ABANDON:
            raise ManualTestBuildError(
                f"Application modules \"{row.application_modules}\" could not be resolved"
            )

        builder = EntityModelBuilder().name(row.name).description(row.description)
        entity = resolved.apply(builder).build()
        self.udf_handler.add_udfs_to_entity(row, entity, self.context)

        created = self.context.client.create_entity(MANUAL_TESTS, entity)
        test_id = str(created["id"])
        self.context.record_migrated_test(row.unique_id, test_id)
        logger.info(f"Uploaded test with original id: {row.unique_id} => target id: {test_id}")
        return test_id

    def _finish(self, status: Status) -> Status:
        if self.context is not None:
            self.summary = MigrationSummary.from_status(
                status, self.context.status, self.context.error_tracker.get_error_summary()
            )
        else:
            self.summary = MigrationSummary(status=status)
        return status

    def close(self) -> None:
        if self.context is not None:
            self.context.client.close()


def inspect_file(path: Path, udf_handler: UDFHandler | None = None) -> FileReport:
    """
    Check an import file without contacting Octane.

    Raises
    ------
        SpreadsheetError: If the file cannot be read
        IncorrectFileError: If the header or the unique ids are invalid

    """
    sheet = read_sheet(path)
    report = FileReport(path=Path(path))
    if sheet.header is None:
        return report

    header = HeaderIndex.from_header(sheet.header)
    validate_unique_ids(sheet.rows, header)

    udf_handler = udf_handler or UDFHandler()
    udf_handler.init_column_indexes(sheet.header)
    report.udf_columns = sorted(udf_handler.column_indexes)

    for raw_row in sheet.rows:
        row = ExcelImportRow(raw_row, header)
        report.data_rows += 1
        if row.is_test_root():
            report.test_roots += 1
        elif row.is_step():
            report.steps += 1
        else:
            report.other_rows += 1
    return report
