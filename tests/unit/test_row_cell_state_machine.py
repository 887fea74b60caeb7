from __future__ import annotations

import io
import logging
from collections.abc import Mapping

import pytest
from openpyxl.utils.datetime import MAC_EPOCH

from sheetrows.application.services.number_format_resolver import NumberFormatResolver
from sheetrows.application.services.row_cell_state_machine import CellState, RowCellStateMachine
from sheetrows.application.services.shared_string_resolver import SharedStringResolver
from sheetrows.core.config import ConversionSettings
from sheetrows.core.errors import MalformedReferenceError
from sheetrows.domain.models.cell import ErrorCellPolicy
from sheetrows.domain.models.selection import SheetSelection
from sheetrows.domain.models.workbook import StyleFormat

NS = "{http://schemas.openxmlformats.org/spreadsheetml/2006/main}"

# style index -> number format
_STYLES = {
    0: StyleFormat(num_fmt_id=0),
    1: StyleFormat(num_fmt_id=9),
    2: StyleFormat(num_fmt_id=14),
    3: StyleFormat(num_fmt_id=21),
    4: StyleFormat(num_fmt_id=22),
    5: StyleFormat(num_fmt_id=4),
    6: StyleFormat(num_fmt_id=164, format_code="0\\\""),
}


def _machine(
    strings: list[str] | None = None,
    styles: Mapping[int, StyleFormat] | None = None,
    **kwargs: object,
) -> tuple[RowCellStateMachine, io.StringIO]:
    out = io.StringIO()
    machine = RowCellStateMachine(
        out,
        shared_strings=SharedStringResolver(strings or []),
        formats=NumberFormatResolver(_STYLES if styles is None else styles),
        sheet_name="Test",
        **kwargs,
    )
    return machine, out


def _cell(
    machine: RowCellStateMachine,
    ref: str | None,
    value: str | list[str],
    *,
    t: str | None = None,
    s: str | None = None,
) -> None:
    attrib = {}
    if ref is not None:
        attrib["r"] = ref
    if t is not None:
        attrib["t"] = t
    if s is not None:
        attrib["s"] = s
    machine.start("c", attrib)
    machine.start("v", {})
    for piece in [value] if isinstance(value, str) else value:
        machine.data(piece)
    machine.end("v")
    machine.end("c")


def _row(machine: RowCellStateMachine, number: int | None, *cells: tuple) -> None:
    machine.start("row", {} if number is None else {"r": str(number)})
    for cell in cells:
        ref, value, *rest = cell
        _cell(machine, ref, value, **(rest[0] if rest else {}))
    machine.end("row")


def test_sparse_cells_are_padded_with_separators() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "1"), ("C1", "2"), ("E1", "3"))
    assert out.getvalue() == "1,,2,,3\n"
    assert machine.rows_written == 1


def test_first_cell_in_later_column_gets_leading_separators() -> None:
    machine, out = _machine()
    _row(machine, 1, ("C1", "x"))
    assert out.getvalue() == ",,x\n"


def test_shared_string_is_resolved_and_quoted() -> None:
    machine, out = _machine(strings=["x", "y", "z", "w"])
    _row(machine, 1, ("A1", "3", {"t": "s"}))
    assert out.getvalue() == '"w"\n'


def test_embedded_quotes_are_doubled() -> None:
    machine, out = _machine(strings=['say "hi"'])
    _row(machine, 1, ("A1", "0", {"t": "s"}))
    assert out.getvalue() == '"say ""hi"""\n'


def test_unstyled_number_passes_through_raw() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "12.50"))
    assert out.getvalue() == "12.50\n"


def test_styled_numbers_use_their_format() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "0.5", {"s": "1"}), ("B1", "3.0", {"s": "0"}))
    assert out.getvalue() == "50%,3\n"


def test_booleans_render_as_words() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "0", {"t": "b"}), ("B1", "1", {"t": "b"}))
    assert out.getvalue() == "FALSE,TRUE\n"


def test_split_text_events_are_concatenated() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", ["ab", "cd"], {"t": "str"}))
    assert out.getvalue() == '"abcd"\n'


def test_error_cells_follow_policy() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "#DIV/0!", {"t": "e"}))
    assert out.getvalue() == '"ERROR:#DIV/0!"\n'

    machine, out = _machine(settings=ConversionSettings(error_policy=ErrorCellPolicy.QUOTE))
    _row(machine, 1, ("A1", "#DIV/0!", {"t": "e"}))
    assert out.getvalue() == '"#DIV/0!"\n'


def test_date_time_and_datetime_styles() -> None:
    machine, out = _machine()
    _row(
        machine,
        1,
        ("A1", "45306", {"s": "2"}),
        ("B1", "0.75", {"s": "3"}),
        ("C1", "45306.5", {"s": "4"}),
    )
    assert out.getvalue() == '"1/15/2024","06:00:00 PM","45306.5"\n'


def test_date_uses_1904_epoch_when_given() -> None:
    machine, out = _machine(epoch=MAC_EPOCH)
    _row(machine, 1, ("A1", "1", {"s": "2"}))
    assert out.getvalue() == '"1/2/1904"\n'


def test_bad_shared_string_index_leaves_empty_field(caplog: pytest.LogCaptureFixture) -> None:
    machine, out = _machine(strings=["a"])
    with caplog.at_level(logging.WARNING):
        _row(machine, 1, ("A1", "abc", {"t": "s"}), ("B1", "9", {"t": "s"}), ("C1", "0", {"t": "s"}))
    assert out.getvalue() == ',,"a"\n'
    assert machine.cells_failed == 2
    assert "A1" in caplog.text
    assert "B1" in caplog.text


def test_empty_boolean_leaves_empty_field() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "", {"t": "b"}), ("B1", "1"))
    assert out.getvalue() == ",1\n"
    assert machine.cells_failed == 1


def test_row_filter_is_inclusive() -> None:
    machine, out = _machine(selection=SheetSelection(first_row=5, last_row=13))
    for number in range(1, 16):
        _row(machine, number, (f"A{number}", str(number)))
    assert out.getvalue().splitlines() == [str(n) for n in range(5, 14)]
    assert machine.rows_written == 9
    assert machine.rows_skipped == 6


def test_min_columns_pads_short_rows() -> None:
    machine, out = _machine(settings=ConversionSettings(min_columns=4))
    _row(machine, 1, ("A1", "1"))
    _row(machine, 2)
    _row(machine, 3, ("A3", "1"), ("B3", "2"), ("C3", "3"), ("D3", "4"), ("E3", "5"))
    assert out.getvalue().splitlines() == ["1,,,", ",,,", "1,2,3,4,5"]


def test_custom_separator() -> None:
    machine, out = _machine(settings=ConversionSettings(separator=";"))
    _row(machine, 1, ("A1", "1"), ("C1", "2"))
    assert out.getvalue() == "1;;2\n"


def test_inline_string_reads_only_text_runs() -> None:
    machine, out = _machine()
    machine.start("row", {"r": "1"})
    machine.start("c", {"r": "A1", "t": "inlineStr"})
    machine.start("is", {})
    machine.start("r", {})
    machine.start("t", {})
    machine.data("hel")
    machine.end("t")
    machine.end("r")
    machine.start("t", {})
    machine.data("lo")
    machine.end("t")
    machine.start("rPh", {})
    machine.start("t", {})
    machine.data("ignored")
    machine.end("t")
    machine.end("rPh")
    machine.end("is")
    machine.end("c")
    machine.end("row")
    assert out.getvalue() == '"hello"\n'


def test_namespaced_tags_and_text_outside_values() -> None:
    machine, out = _machine()
    machine.start(f"{NS}row", {"r": "1"})
    machine.data("\n  ")
    machine.start(f"{NS}c", {"r": "B1"})
    machine.data("junk")
    machine.start(f"{NS}f", {})
    machine.data("SUM(A1:A2)")
    machine.end(f"{NS}f")
    machine.start(f"{NS}v", {})
    machine.data("7")
    machine.end(f"{NS}v")
    machine.end(f"{NS}c")
    machine.end(f"{NS}row")
    assert out.getvalue() == ",7\n"


def test_missing_references_continue_from_previous() -> None:
    machine, out = _machine()
    _row(machine, None, (None, "a"), (None, "b"))
    _row(machine, None, ("B2", "c"), (None, "d"))
    assert out.getvalue() == "a,b\n,c,d\n"


def test_malformed_cell_reference_raises() -> None:
    machine, _out = _machine()
    machine.start("row", {"r": "1"})
    with pytest.raises(MalformedReferenceError):
        machine.start("c", {"r": "ABC"})


def test_close_terminates_open_line_once() -> None:
    machine, out = _machine()
    machine.start("row", {"r": "1"})
    _cell(machine, "A1", "1")
    machine.close()
    machine.close()
    assert out.getvalue() == "1\n"
    assert machine.rows_written == 1


def test_same_events_give_same_output() -> None:
    outputs = []
    for _ in range(2):
        machine, out = _machine(strings=["s"])
        _row(machine, 1, ("A1", "0", {"t": "s"}), ("D1", "0.5", {"s": "1"}))
        outputs.append(out.getvalue())
    assert outputs[0] == outputs[1] == '"s",,,50%\n'


def test_formatted_numbers_containing_separator_are_quoted() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "1234.5", {"s": "5"}), ("B1", "7", {"s": "0"}), ("C1", "0.5", {"s": "5"}))
    assert out.getvalue() == '"1,234.50",7,0.50\n'


def test_formatted_number_with_quote_literal_is_escaped() -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", "5", {"s": "6"}))
    assert out.getvalue() == '"5"""\n'


def test_grouped_number_stays_bare_with_other_separator() -> None:
    machine, out = _machine(settings=ConversionSettings(separator=";"))
    _row(machine, 1, ("A1", "1234.5", {"s": "5"}), ("B1", "7"))
    assert out.getvalue() == "1,234.50;7\n"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0", "12:00:00 AM"),
        ("0.25", "06:00:00 AM"),
        ("0.5", "12:00:00 PM"),
        ("0.999988426", "11:59:59 PM"),
    ],
)
def test_time_of_day_uses_twelve_hour_clock(raw: str, expected: str) -> None:
    machine, out = _machine()
    _row(machine, 1, ("A1", raw, {"s": "3"}))
    assert out.getvalue() == f'"{expected}"\n'


@pytest.mark.parametrize("raw", ["abc", "1e400", "inf", "-inf", "nan"])
@pytest.mark.parametrize("style", ["0", "1", "2", "3"])
def test_unreadable_numeric_values_leave_empty_field(
    raw: str, style: str, caplog: pytest.LogCaptureFixture
) -> None:
    machine, out = _machine()
    with caplog.at_level(logging.WARNING):
        _row(machine, 1, ("A1", raw, {"s": style}), ("B1", "1"))
    assert out.getvalue() == ",1\n"
    assert machine.cells_failed == 1
    assert "A1" in caplog.text


def test_unknown_kind_renders_placeholder() -> None:
    machine, _out = _machine()
    cell = CellState(reference="A1", column=0, kind="sparkline")  # type: ignore[arg-type]
    assert machine._render(cell, "x") == "(unexpected type: sparkline)"


def test_row_filter_off_never_skips() -> None:
    machine, out = _machine(selection=SheetSelection())
    _row(machine, 1_048_576, ("A1048576", "last"))
    assert out.getvalue() == "last\n"
    assert machine.rows_skipped == 0
