from __future__ import annotations

import argparse
from pathlib import Path

from rich.markup import escape
from rich.table import Table

from sheetrows.cli.context import CLIContext
from sheetrows.core.files import require_file
from sheetrows.infrastructure.xlsx.package_reader import XlsxPackageReader


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("sheets", help="List the worksheets of a workbook")
    parser.add_argument("input", type=Path, help="Path to an .xlsx workbook")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    input_path = require_file(args.input)
    with XlsxPackageReader(input_path) as reader:
        entries = reader.sheets()
        date_system = "1904" if reader.uses_1904_dates() else "1900"

    table = Table(title=f"Sheets ({len(entries)}, {date_system} date system)")
    table.add_column("Index")
    table.add_column("Name", overflow="fold")
    table.add_column("State")
    table.add_column("Part", overflow="fold")
    for entry in entries:
        table.add_row(str(entry.index), escape(entry.name), entry.state, escape(entry.part_path) or "-")
    ctx.console.print(table)
    return 0
