from __future__ import annotations

from collections.abc import Mapping

from openpyxl.styles.numbers import BUILTIN_FORMATS

from sheetrows.core.number_format import date_category
from sheetrows.domain.models.cell import CellValueKind
from sheetrows.domain.models.workbook import StyleFormat


class NumberFormatResolver:
    """Maps a cell style index to the number format code used to display it."""

    def __init__(self, styles: Mapping[int, StyleFormat]) -> None:
        self._styles = styles
        self._categories: dict[int, CellValueKind | None] = {}

    def format_string_for(self, style_index: int) -> str | None:
        style = self._styles.get(style_index)
        if style is None:
            return None
        if style.format_code:
            return style.format_code
        return BUILTIN_FORMATS.get(style.num_fmt_id)

    def category_for(self, style_index: int) -> CellValueKind | None:
        if style_index not in self._categories:
            self._categories[style_index] = date_category(self.format_string_for(style_index))
        return self._categories[style_index]
