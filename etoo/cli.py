"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from etoo import __version__
from etoo.core.config import (
    ImportConfig,
    LoggingConfig,
    OctaneConfig,
    get_app_config,
    init_app_config,
)
from etoo.core.logging import run_id
from etoo.excel_import_row import IncorrectFileError
from etoo.excel_importer import ExcelImporter, inspect_file
from etoo.migration_status import MigrationSummary, Status
from etoo.octane_client import OctaneClient
from etoo.spreadsheet import SpreadsheetError
from etoo.udf_handler import UDFHandler, describe_spec, load_udf_specs

# Initialize console for rich output
console = Console()

# Initialize the CLI app
app = typer.Typer(help="ETOO - Excel to Octane")

logger = logging.getLogger("etoo")


def configure_app(debug: bool = False, log_file: Path | None = None, json_logs: bool = False):
    """
    Configure the application with the specified settings.

    Args:
    ----
        debug: Whether to enable debug mode
        log_file: Optional file receiving the log as well
        json_logs: Whether to log JSON lines

    """
    logging_config = LoggingConfig.from_env(
        log_file=str(log_file) if log_file else None,
        json_format=json_logs or None,
    )
    config = init_app_config(debug=debug, app_version=__version__, logging=logging_config)
    config.configure_logging()
    return config


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode with verbose logging"),
    version: bool = typer.Option(False, "--version", help="Show the application version and exit"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write the log to this file"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log JSON lines instead of text"),
):
    """
    ETOO - A tool for importing manual tests from Excel into ALM Octane.

    Use --debug to enable verbose logging.
    """
    if version:
        console.print(f"ETOO version: {__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()

    configure_app(debug=debug, log_file=log_file, json_logs=json_logs)


def print_summary(summary: MigrationSummary) -> None:
    """Print the outcome of an import run."""
    table = Table(title="Import Summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Status", summary.status.value)
    table.add_row("Migrated tests", str(summary.migrated_tests))
    table.add_row("Failed tests", str(summary.failed_tests))
    table.add_row("Uploaded steps", str(summary.uploaded_steps))
    table.add_row("Failed steps", str(summary.failed_steps))
    console.print(table)

    error_types = summary.errors.get("error_types") or {}
    if error_types:
        errors = Table(title="Errors")
        errors.add_column("Type")
        errors.add_column("Count", justify="right")
        for error_type, count in sorted(error_types.items()):
            errors.add_row(error_type, str(count))
        console.print(errors)


@app.command("import")
def import_tests(
    file_path: Path = typer.Argument(..., help="Path to the .xlsx file with the tests"),
    server: str | None = typer.Option(None, help="Octane server URL"),
    shared_space: int | None = typer.Option(None, help="Shared space id"),
    workspace: int | None = typer.Option(None, help="Workspace id"),
    user: str | None = typer.Option(None, help="Octane user name"),
    password: str | None = typer.Option(None, help="Octane password"),
    client_id: str | None = typer.Option(None, help="API access client id"),
    client_secret: str | None = typer.Option(None, help="API access client secret"),
    proxy_host: str | None = typer.Option(None, help="HTTP(S) proxy host"),
    proxy_port: int | None = typer.Option(None, help="HTTP(S) proxy port"),
    default_user: str | None = typer.Option(
        None, help="Email of the user used when an owner or designer is unknown"
    ),
    default_release: str | None = typer.Option(
        None, help="Release used when a release value is unknown"
    ),
    default_test_type: str | None = typer.Option(
        None, help="Test type used for tests without one"
    ),
    workers: int | None = typer.Option(None, help="Number of script upload threads"),
    udf_config: Path | None = typer.Option(
        None, "--udf-config", help="YAML file with the user-defined field table"
    ),
):
    """
    Import the manual tests of FILE_PATH into Octane.

    Options not given on the command line are read from ETOO_* environment variables.
    """
    try:
        octane_config = OctaneConfig.from_env(
            server=server,
            shared_space_id=shared_space,
            workspace_id=workspace,
            user=user,
            password=password,
            client_id=client_id,
            client_secret=client_secret,
            proxy_host=proxy_host,
            proxy_port=proxy_port,
        )
        import_config = ImportConfig.from_env(
            file_path=file_path,
            default_user_email=default_user,
            default_release_name=default_release,
            default_test_type_name=default_test_type,
            upload_workers=workers,
            udf_config_path=udf_config,
        )
        udf_handler = UDFHandler.from_config(import_config.udf_config_path)
    except ValidationError as e:
        console.print(f"Invalid configuration:\n{e}", style="red")
        raise typer.Exit(code=1)
    except (OSError, ValueError) as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(code=1)

    app_config = get_app_config()
    app_config.octane = octane_config
    app_config.importer = import_config

    console.print(f"Importing {file_path} into {octane_config.workspace_url}")
    importer = ExcelImporter(
        import_config,
        client_factory=lambda: OctaneClient(octane_config),
        udf_handler=udf_handler,
    )

    with run_id() as current_run:
        logger.info(f"Starting import run {current_run}")
        try:
            init_status = importer.init()
            if init_status is not Status.INIT_SUCCESS:
                console.print(f"Initialization failed: {init_status.value}", style="red")
            importer.migrate()
        finally:
            importer.close()

    print_summary(importer.summary)
    if not importer.summary.succeeded:
        raise typer.Exit(code=1)
    console.print("✅ All tests and steps were imported", style="green")


@app.command("validate")
def validate_file(
    file_path: Path = typer.Argument(..., help="Path to the .xlsx file with the tests"),
    udf_config: Path | None = typer.Option(
        None, "--udf-config", help="YAML file with the user-defined field table"
    ),
):
    """
    Check the header and unique ids of FILE_PATH without contacting Octane.
    """
    try:
        report = inspect_file(file_path, UDFHandler.from_config(udf_config))
    except (SpreadsheetError, IncorrectFileError) as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1)
    except (OSError, ValueError) as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(code=1)

    if report.test_roots == 0:
        console.print("❌ The file contains no manual tests", style="red")
        raise typer.Exit(code=1)

    table = Table(title=f"File {file_path.name}")
    table.add_column("Item")
    table.add_column("Count", justify="right")
    table.add_row("Data rows", str(report.data_rows))
    table.add_row("Manual tests", str(report.test_roots))
    table.add_row("Steps", str(report.steps))
    table.add_row("Other rows", str(report.other_rows))
    table.add_row("UDF columns", ", ".join(report.udf_columns) or "-")
    console.print(table)
    console.print("✅ Valid import file", style="green")


@app.command("udfs")
def list_udfs(
    udf_config: Path | None = typer.Option(
        None, "--udf-config", help="YAML file with the user-defined field table"
    ),
):
    """
    List the configured user-defined fields.
    """
    try:
        specs = load_udf_specs(udf_config) if udf_config else UDFHandler().specs
    except (OSError, ValueError) as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(code=1)

    table = Table(title="User-defined fields")
    table.add_column("Column")
    table.add_column("Kind")
    table.add_column("Subtype")
    for name, spec in sorted(specs.items()):
        kind, subtype = describe_spec(spec)
        table.add_row(name, kind, subtype or "-")
    console.print(table)
