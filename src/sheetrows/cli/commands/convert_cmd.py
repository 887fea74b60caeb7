from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from sheetrows.application.services.sheet_stream_driver import SheetStreamDriver
from sheetrows.cli.context import CLIContext
from sheetrows.core.config import load_settings
from sheetrows.core.files import ensure_directory, require_file
from sheetrows.domain.models.cell import ErrorCellPolicy
from sheetrows.domain.models.selection import SheetSelection
from sheetrows.infrastructure.xlsx.package_reader import XlsxPackageReader

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("convert", help="Write each worksheet as separator-delimited text rows")
    parser.add_argument("input", type=Path, help="Path to an .xlsx workbook")
    parser.add_argument(
        "min_columns",
        nargs="?",
        type=int,
        default=None,
        help="Pad every row to at least this many fields (default: no minimum)",
    )
    parser.add_argument("--first-row", type=int, default=None, help="First spreadsheet row to emit (1-based, inclusive)")
    parser.add_argument("--last-row", type=int, default=None, help="Last spreadsheet row to emit (inclusive)")
    parser.add_argument("--sheet", dest="sheet_pattern", default=None, help="Regular expression matched against sheet names")
    parser.add_argument("--separator", default=None, help="Field separator (default: ',' or $SHEETROWS_SEPARATOR)")
    parser.add_argument(
        "--error-cells",
        choices=[policy.value for policy in ErrorCellPolicy],
        default=None,
        help="Render error cells as \"ERROR:<code>\" (wrap) or as the quoted code (quote)",
    )
    parser.add_argument("-o", "--output", type=Path, default=None, help="Write rows to this file instead of stdout")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    input_path = require_file(args.input)
    settings = load_settings(
        separator=args.separator,
        min_columns=args.min_columns,
        error_policy=args.error_cells,
    )
    selection = SheetSelection(
        first_row=args.first_row,
        last_row=args.last_row,
        sheet_pattern=args.sheet_pattern,
    )

    with XlsxPackageReader(input_path) as reader, _open_output(args.output, ctx.output) as output:
        report = SheetStreamDriver(reader, output, settings=settings, selection=selection).run()

    failed = [sheet for sheet in report.sheets if not sheet.ok]
    logger.info(
        "Converted %d sheet(s), %d row(s); %d sheet(s) filtered out",
        len(report.sheets),
        report.rows_written,
        report.sheets_filtered,
    )
    if failed:
        logger.error("%d sheet(s) stopped early: %s", len(failed), ", ".join(sheet.name for sheet in failed))
        return 1
    return 0


@contextmanager
def _open_output(path: Path | None, default: TextIO) -> Iterator[TextIO]:
    if path is None:
        yield default
        default.flush()
        return
    ensure_directory(path.parent)
    with path.open("w", encoding="utf-8", newline="") as handle:
        yield handle
