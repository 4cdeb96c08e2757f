#!/usr/bin/env python3
"""
Console interface for CSV imports.
Runs the import pipeline against the configured database and renders the
outcome with rich.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core.config import settings
from .core.logging_config import configure_logging
from .db.metadata import SqlSchemaService, create_metadata_tables
from .db.models import SqlRowStore
from .domain.fields import FieldKind
from .domain.imports.exceptions import (
    BatchWriteError,
    DataImportError,
    ImportCancelledError,
    NoImportableRowsError,
)
from .domain.imports.models import ImportSummary
from .domain.imports.orchestrator import ImportRequest, run_import
from .domain.imports.processors.csv_processor import parse_csv_bytes

SKIPPED_PREVIEW_LIMIT = 10
EXIT_ABORTED = 130


def _parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for value in values or []:
        column, sep, target = value.partition("=")
        if not sep or not column.strip() or not target.strip():
            raise argparse.ArgumentTypeError(f"{option} expects COLUMN=VALUE, got '{value}'")
        pairs[column.strip()] = target.strip()
    return pairs


class ImportConsole:
    """Runs one import and renders the result."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.imported_so_far = 0

    def on_progress(self, imported: int, total: int) -> None:
        self.imported_so_far = imported
        self.console.print(f"[dim]Imported {imported}/{total} rows[/dim]")

    def print_summary(self, summary: ImportSummary, title: str = "Import Summary") -> None:
        totals = Table(title=title)
        totals.add_column("Metric", style="cyan", no_wrap=True)
        totals.add_column("Value", style="white", justify="right")
        totals.add_row("Source rows", str(summary.total_source_rows))
        totals.add_row("Imported", f"[green]{summary.imported_rows}[/green]")
        totals.add_row("Skipped", f"[yellow]{summary.skipped_rows}[/yellow]")
        totals.add_row("Key field", summary.primary_key_field or "-")
        if summary.created_fields:
            totals.add_row("New fields", ", ".join(summary.created_fields))
        self.console.print(totals)

        if not summary.skipped_details:
            return

        skipped = Table(title="Skipped Rows")
        skipped.add_column("Row", style="dim", justify="right")
        skipped.add_column("Reason", style="yellow")
        skipped.add_column("Value", style="white")
        for detail in summary.skipped_details[:SKIPPED_PREVIEW_LIMIT]:
            value = "" if detail.value is None else str(detail.value)
            skipped.add_row(str(detail.row_number or ""), detail.reason, value)
        self.console.print(skipped)
        remaining = len(summary.skipped_details) - SKIPPED_PREVIEW_LIMIT
        if remaining > 0:
            self.console.print(f"[dim]... and {remaining} more skipped rows[/dim]")

    def print_error(self, message: str, title: str = "Import failed") -> None:
        self.console.print(Panel(f"[red]❌ {message}[/red]", title=title, border_style="red"))

    def run_import(self, args: argparse.Namespace) -> int:
        path = Path(args.file)
        if not path.is_file():
            self.print_error(f"File not found: {path}")
            return 1

        try:
            field_types = {
                column: FieldKind(kind)
                for column, kind in _parse_pairs(args.type, "--type").items()
            }
        except ValueError as e:
            self.print_error(str(e))
            return 1
        column_mappings: Dict[str, Optional[str]] = dict(_parse_pairs(args.map, "--map"))
        for column in args.skip or []:
            column_mappings[column] = None

        create_metadata_tables()
        try:
            table = parse_csv_bytes(path.read_bytes(), max_columns=settings.import_max_columns)
            request = ImportRequest(
                table_id=args.table,
                table=table,
                column_mappings=column_mappings,
                field_types=field_types,
                linked_tables=_parse_pairs(args.link, "--link"),
            )
            with self.console.status("[bold green]Importing...", spinner="dots"):
                summary = asyncio.run(
                    run_import(request, SqlSchemaService(), SqlRowStore(), on_progress=self.on_progress)
                )
        except (KeyboardInterrupt, ImportCancelledError):
            self.console.print(
                f"\n[yellow]Import aborted. {self.imported_so_far} rows had already been committed.[/yellow]"
            )
            return EXIT_ABORTED
        except NoImportableRowsError as e:
            self.print_summary(e.summary, title="Nothing Imported")
            self.print_error(e.message)
            return 1
        except BatchWriteError as e:
            self.print_error(e.message, title=f"Import failed ({e.category})")
            return 1
        except DataImportError as e:
            self.print_error(e.message)
            return 1

        self.console.print(Panel(
            f"[green]✅ Imported {summary.imported_rows} rows into table {args.table}[/green]",
            title="Import complete",
            border_style="green",
        ))
        self.print_summary(summary)
        return 0

    def create_table(self, args: argparse.Namespace) -> int:
        create_metadata_tables()
        table = SqlSchemaService().create_table(args.name)
        self.console.print(f"[green]Created table '{table['name']}' with id[/green] {table['id']}")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m gridbase.console",
        description="Gridbase console - import CSV files into tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s create-table Contacts
  %(prog)s import contacts.csv --table <table-id>
  %(prog)s import orders.csv --table <id> --type Status=single_select --skip Notes
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create-table", help="Create an empty table")
    create.add_argument("name", help="Table name")

    importer = subparsers.add_parser("import", help="Import a CSV file into a table")
    importer.add_argument("file", help="Path to the CSV file")
    importer.add_argument("--table", required=True, help="Target table id")
    importer.add_argument("--type", action="append", metavar="COL=KIND",
                          help="Field kind for a column that becomes a new field")
    importer.add_argument("--skip", action="append", metavar="COL", help="Column to leave out")
    importer.add_argument("--map", action="append", metavar="COL=FIELD",
                          help="Map a column to an existing field")
    importer.add_argument("--link", action="append", metavar="COL=TABLE",
                          help="Target table id for a link_to_table column")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(settings.log_level)

    import_console = ImportConsole()
    try:
        if args.command == "create-table":
            return import_console.create_table(args)
        return import_console.run_import(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))


if __name__ == "__main__":
    sys.exit(main())
