from __future__ import annotations

import logging
import zipfile
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import IO, Protocol, TextIO
from xml.etree import ElementTree as ET

from openpyxl.utils.datetime import MAC_EPOCH, WINDOWS_EPOCH

from sheetrows.application.services.number_format_resolver import NumberFormatResolver
from sheetrows.application.services.row_cell_state_machine import RowCellStateMachine
from sheetrows.application.services.shared_string_resolver import SharedStringResolver
from sheetrows.core.config import ConversionSettings
from sheetrows.core.errors import MalformedReferenceError, PackageReadError
from sheetrows.domain.models.selection import SheetSelection
from sheetrows.domain.models.workbook import ConversionReport, SheetEntry, SheetReport, StyleFormat
from sheetrows.infrastructure.xlsx.event_source import feed_sheet

logger = logging.getLogger(__name__)

_SHEET_FAILURES = (
    MalformedReferenceError,
    PackageReadError,
    ET.ParseError,
    zipfile.BadZipFile,
    OSError,
)


class PackageReader(Protocol):
    def shared_strings(self) -> Sequence[str]: ...

    def styles(self) -> Mapping[int, StyleFormat]: ...

    def uses_1904_dates(self) -> bool: ...

    def sheets(self) -> list[SheetEntry]: ...

    def open_sheet(self, entry: SheetEntry) -> IO[bytes]: ...


class SheetStreamDriver:
    def __init__(
        self,
        reader: PackageReader,
        output: TextIO,
        *,
        settings: ConversionSettings | None = None,
        selection: SheetSelection | None = None,
    ) -> None:
        self.reader = reader
        self.output = output
        self.settings = settings or ConversionSettings()
        self.selection = selection or SheetSelection()

    def run(self) -> ConversionReport:
        shared_strings = SharedStringResolver(self.reader.shared_strings())
        formats = NumberFormatResolver(self.reader.styles())
        epoch = MAC_EPOCH if self.reader.uses_1904_dates() else WINDOWS_EPOCH

        report = ConversionReport()
        for entry in self.reader.sheets():
            if not self.selection.includes_sheet(entry.name):
                logger.debug("Skipping sheet %r: name does not match %r", entry.name, self.selection.sheet_pattern)
                report.sheets_filtered += 1
                continue
            report.sheets.append(
                self._process_sheet(entry, shared_strings=shared_strings, formats=formats, epoch=epoch)
            )
        return report

    def _process_sheet(
        self,
        entry: SheetEntry,
        *,
        shared_strings: SharedStringResolver,
        formats: NumberFormatResolver,
        epoch: datetime,
    ) -> SheetReport:
        self.output.write(f"{entry.name} [index={entry.index}]:\n")
        machine = RowCellStateMachine(
            self.output,
            shared_strings=shared_strings,
            formats=formats,
            settings=self.settings,
            selection=self.selection,
            epoch=epoch,
            sheet_name=entry.name,
        )
        sheet_report = SheetReport(name=entry.name, index=entry.index)
        try:
            with self.reader.open_sheet(entry) as stream:
                feed_sheet(stream, machine, chunk_size=self.settings.chunk_size)
        except _SHEET_FAILURES as exc:
            sheet_report.error = str(exc) or type(exc).__name__
            logger.error("Sheet %r [index=%d] aborted: %s", entry.name, entry.index, sheet_report.error)
        finally:
            machine.close()

        sheet_report.rows_written = machine.rows_written
        sheet_report.rows_skipped = machine.rows_skipped
        logger.info(
            "Sheet %r [index=%d]: %d row(s) written, %d skipped, %d cell(s) left empty",
            entry.name,
            entry.index,
            machine.rows_written,
            machine.rows_skipped,
            machine.cells_failed,
        )
        return sheet_report
