from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True, slots=True)
class CellReference:
    column_letters: str
    row_number: int

    def __str__(self) -> str:
        return f"{self.column_letters}{self.row_number}"


class CellValueKind(str, Enum):
    BOOLEAN = "boolean"
    ERROR = "error"
    FORMULA = "formula"
    INLINE_STRING = "inline_string"
    SHARED_STRING_INDEX = "shared_string_index"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"


class ErrorCellPolicy(str, Enum):
    """How cells typed ``t="e"`` are rendered.

    ``WRAP`` emits ``"ERROR:<code>"``; ``QUOTE`` renders the error code like a
    formula's cached string value.
    """

    WRAP = "wrap"
    QUOTE = "quote"
