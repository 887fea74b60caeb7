from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn

from rich.console import Console

from sheetrows.cli.commands import convert_cmd, sheets_cmd
from sheetrows.cli.context import CLIContext
from sheetrows.core.errors import InputFileError, SheetRowsError
from sheetrows.core.logging import configure_logging

logger = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="sheetrows",
        description="Stream .xlsx worksheets as separator-delimited text rows",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    convert_cmd.register(subparsers)
    sheets_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    ctx = CLIContext(console=Console(), output=sys.stdout)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_usage(sys.stderr)
        return 1

    try:
        return handler(args, ctx)
    except InputFileError as exc:
        logger.error(str(exc))
        parser.print_usage(sys.stderr)
        return 1
    except SheetRowsError as exc:
        logger.error(str(exc))
        return 1
