from __future__ import annotations

import logging

from sheetrows.application.services.number_format_resolver import NumberFormatResolver
from sheetrows.domain.models.cell import CellValueKind, ErrorCellPolicy

logger = logging.getLogger(__name__)

_EXPLICIT_TYPES = {
    "b": CellValueKind.BOOLEAN,
    "inlineStr": CellValueKind.INLINE_STRING,
    "s": CellValueKind.SHARED_STRING_INDEX,
    "str": CellValueKind.FORMULA,
}


class CellTypeClassifier:
    def __init__(
        self,
        formats: NumberFormatResolver,
        *,
        error_policy: ErrorCellPolicy = ErrorCellPolicy.WRAP,
    ) -> None:
        self.formats = formats
        self.error_policy = error_policy

    def classify(self, type_attr: str | None, style_attr: str | None) -> CellValueKind:
        # An explicit t="..." always wins over anything the style implies.
        if type_attr == "e":
            return CellValueKind.ERROR if self.error_policy is ErrorCellPolicy.WRAP else CellValueKind.FORMULA
        if type_attr in _EXPLICIT_TYPES:
            return _EXPLICIT_TYPES[type_attr]

        style_index = self.style_index(style_attr)
        if style_index is not None:
            category = self.formats.category_for(style_index)
            if category is not None:
                return category
        return CellValueKind.NUMBER

    @staticmethod
    def style_index(style_attr: str | None) -> int | None:
        if style_attr is None:
            return None
        try:
            return int(style_attr)
        except ValueError:
            logger.debug("Ignoring non-numeric style attribute %r", style_attr)
            return None
