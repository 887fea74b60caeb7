"""Streaming interpreter for one worksheet's ``<row>``/``<c>`` markup.

The machine is an ElementTree parser target: ``start``/``data``/``end`` receive
element-open, text and element-close events in document order and every
finished value is written straight to the output sink, one field at a time.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TextIO

from openpyxl.utils.datetime import WINDOWS_EPOCH, from_excel

from sheetrows.application.services.cell_type_classifier import CellTypeClassifier
from sheetrows.application.services.number_format_resolver import NumberFormatResolver
from sheetrows.application.services.shared_string_resolver import SharedStringResolver
from sheetrows.core.columns import column_index, column_name, row_number, split_reference
from sheetrows.core.config import ConversionSettings
from sheetrows.core.errors import SharedStringIndexError
from sheetrows.core.markup import local_tag
from sheetrows.core.number_format import format_number
from sheetrows.domain.models.cell import CellValueKind
from sheetrows.domain.models.selection import SheetSelection

logger = logging.getLogger(__name__)

_PLAIN_VALUE_ELEMENTS = {"v", "inlineStr"}
_RICH_VALUE_ELEMENT = "is"


@dataclass(slots=True)
class RowState:
    last_column: int | None = None
    last_seen_column: int | None = None
    separators: int = 0
    line_open: bool = False
    fragments: list[str] = field(default_factory=list)
    value_open: bool = False
    value_element: str | None = None
    capturing: bool = False
    in_phonetic: bool = False


@dataclass(slots=True)
class CellState:
    reference: str
    column: int
    kind: CellValueKind = CellValueKind.NUMBER
    format_string: str | None = None


class RowCellStateMachine:
    def __init__(
        self,
        output: TextIO,
        *,
        shared_strings: SharedStringResolver,
        formats: NumberFormatResolver,
        settings: ConversionSettings | None = None,
        selection: SheetSelection | None = None,
        epoch: datetime = WINDOWS_EPOCH,
        sheet_name: str = "",
    ) -> None:
        self.output = output
        self.shared_strings = shared_strings
        self.formats = formats
        self.settings = settings or ConversionSettings()
        self.selection = selection or SheetSelection()
        self.epoch = epoch
        self.sheet_name = sheet_name
        self.classifier = CellTypeClassifier(formats, error_policy=self.settings.error_policy)

        self.rows_written = 0
        self.rows_skipped = 0
        self.cells_failed = 0

        self._row = RowState()
        self._row_number = 0
        self._skipping_row = False
        self._cell: CellState | None = None
        self._closed = False
        self._renderers: dict[CellValueKind, Callable[[str], str | None]] = {
            CellValueKind.BOOLEAN: self._render_boolean,
            CellValueKind.ERROR: self._render_error,
            CellValueKind.FORMULA: self._quote,
            CellValueKind.INLINE_STRING: self._quote,
            CellValueKind.SHARED_STRING_INDEX: self._render_shared_string,
            CellValueKind.NUMBER: self._render_number,
            CellValueKind.DATE: self._render_date,
            CellValueKind.TIME: self._render_time,
            CellValueKind.DATETIME: self._quote,
        }

    # ------------------------------------------------------------------ #
    # Parser target protocol
    # ------------------------------------------------------------------ #

    def start(self, tag: str, attrib: Mapping[str, str]) -> None:
        name = local_tag(tag)
        if name == "row":
            self._start_row(attrib)
            return
        if self._skipping_row:
            return

        row = self._row
        if name == "c":
            self._start_cell(attrib)
        elif name in _PLAIN_VALUE_ELEMENTS or name == _RICH_VALUE_ELEMENT:
            row.fragments = []
            row.value_open = True
            row.value_element = name
            row.capturing = name != _RICH_VALUE_ELEMENT
        elif name == "rPh":
            row.in_phonetic = True
        elif name == "t" and row.value_element == _RICH_VALUE_ELEMENT and not row.in_phonetic:
            row.capturing = True

    def data(self, text: str) -> None:
        if self._skipping_row:
            return
        if self._row.value_open and self._row.capturing:
            self._row.fragments.append(text)

    def end(self, tag: str) -> None:
        name = local_tag(tag)
        if name == "row":
            self._end_row()
            return
        if self._skipping_row:
            return

        row = self._row
        if name == row.value_element and row.value_open:
            self._emit_value()
        elif name == "t" and row.value_element == _RICH_VALUE_ELEMENT:
            row.capturing = False
        elif name == "rPh":
            row.in_phonetic = False
        elif name == "c":
            self._cell = None

    def close(self) -> None:
        """Terminate a line left open by a truncated or aborted stream."""
        if self._closed:
            return
        self._closed = True
        if self._row.line_open:
            self.output.write("\n")
            self.rows_written += 1
        self._row = RowState()

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def _start_row(self, attrib: Mapping[str, str]) -> None:
        ref = attrib.get("r")
        self._row_number = row_number(ref) if ref is not None else self._row_number + 1
        self._row = RowState()
        self._cell = None
        selection = self.selection
        self._skipping_row = selection.filters_rows and not selection.includes_row(self._row_number)
        if self._skipping_row:
            self.rows_skipped += 1

    def _start_cell(self, attrib: Mapping[str, str]) -> None:
        ref = attrib.get("r")
        if ref is None:
            previous = self._row.last_seen_column
            column = 0 if previous is None else previous + 1
            ref = f"{column_name(column)}{self._row_number}"
        else:
            column = column_index(split_reference(ref).column_letters)
        self._row.last_seen_column = column

        kind = self.classifier.classify(attrib.get("t"), attrib.get("s"))
        format_string = None
        if kind is CellValueKind.NUMBER:
            style_index = self.classifier.style_index(attrib.get("s"))
            if style_index is not None:
                format_string = self.formats.format_string_for(style_index)
        self._cell = CellState(reference=ref, column=column, kind=kind, format_string=format_string)

    def _emit_value(self) -> None:
        row = self._row
        raw = "".join(row.fragments)
        row.fragments = []
        row.value_open = False
        row.value_element = None
        row.capturing = False

        cell = self._cell
        if cell is None:
            logger.debug("Discarding value outside a cell in sheet %s row %s", self.sheet_name, self._row_number)
            return

        text = self._render(cell, raw)
        start = 0 if row.last_column is None else row.last_column
        self._write_separators(cell.column - start)
        # A failed render still occupies its column.
        self._write(text or "")
        row.last_column = cell.column

    def _end_row(self) -> None:
        if self._skipping_row:
            self._skipping_row = False
            self._row = RowState()
            return
        min_columns = self.settings.min_columns
        if min_columns:
            self._write_separators(min_columns - 1 - self._row.separators)
        self.output.write("\n")
        self.rows_written += 1
        self._row = RowState()
        self._cell = None

    def _write_separators(self, count: int) -> None:
        if count <= 0:
            return
        self._write(self.settings.separator * count)
        self._row.separators += count

    def _write(self, text: str) -> None:
        self.output.write(text)
        self._row.line_open = True

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def _render(self, cell: CellState, raw: str) -> str | None:
        renderer = self._renderers.get(cell.kind)
        if renderer is None:
            return f"(unexpected type: {getattr(cell.kind, 'value', cell.kind)})"
        return renderer(raw)

    def _quote(self, text: str) -> str:
        q = self.settings.quote_char
        return f"{q}{text.replace(q, q + q)}{q}"

    def _render_boolean(self, raw: str) -> str | None:
        if not raw:
            self._diagnose("empty boolean value")
            return None
        return "FALSE" if raw[0] == "0" else "TRUE"

    def _render_error(self, raw: str) -> str:
        return self._quote(f"ERROR:{raw}")

    def _render_shared_string(self, raw: str) -> str | None:
        try:
            index = int(raw)
        except ValueError:
            self._diagnose(f"failed to parse shared string index {raw!r}")
            return None
        try:
            return self._quote(self.shared_strings.resolve(index))
        except SharedStringIndexError as exc:
            self._diagnose(str(exc))
            return None

    def _render_number(self, raw: str) -> str | None:
        format_string = self._cell.format_string if self._cell else None
        if format_string is None:
            return raw
        try:
            text = format_number(float(raw), format_string, epoch=self.epoch)
        except (ValueError, ArithmeticError) as exc:
            self._diagnose(f"cannot format {raw!r} as {format_string!r}: {exc}")
            return None
        # Grouping commas and literals must not split the field.
        reserved = (self.settings.separator, self.settings.quote_char, "\r", "\n")
        if any(ch in text for ch in reserved):
            return self._quote(text)
        return text

    @staticmethod
    def _serial(raw: str) -> float:
        value = float(raw)
        if not math.isfinite(value):
            raise ValueError(f"non-finite serial {value!r}")
        return value

    def _render_date(self, raw: str) -> str | None:
        try:
            stamp = from_excel(int(self._serial(raw)), epoch=self.epoch)
        except (ValueError, ArithmeticError) as exc:
            self._diagnose(f"cannot read {raw!r} as a day count: {exc}")
            return None
        if not isinstance(stamp, datetime):
            # serial 0 comes back as a bare time of day
            stamp = self.epoch
        return self._quote(f"{stamp.month}/{stamp.day}/{stamp.year}")

    def _render_time(self, raw: str) -> str | None:
        try:
            stamp = from_excel(self._serial(raw), epoch=self.epoch)
        except (ValueError, ArithmeticError) as exc:
            self._diagnose(f"cannot read {raw!r} as a time of day: {exc}")
            return None
        hour = stamp.hour % 12 or 12
        marker = "AM" if stamp.hour < 12 else "PM"
        return self._quote(f"{hour:02d}:{stamp.minute:02d}:{stamp.second:02d} {marker}")

    def _diagnose(self, message: str) -> None:
        self.cells_failed += 1
        reference = self._cell.reference if self._cell else f"row {self._row_number}"
        logger.warning("Sheet %r cell %s: %s; leaving the field empty.", self.sheet_name, reference, message)
