from __future__ import annotations

import re
from dataclasses import dataclass

from sheetrows.core.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class SheetSelection:
    first_row: int | None = None
    last_row: int | None = None
    sheet_pattern: str | None = None

    def __post_init__(self) -> None:
        for label, bound in (("first row", self.first_row), ("last row", self.last_row)):
            if bound is not None and bound < 1:
                raise ConfigurationError(f"Invalid {label} bound: {bound}. Rows are numbered from 1.")
        if self.first_row is not None and self.last_row is not None and self.first_row > self.last_row:
            raise ConfigurationError(
                f"First row {self.first_row} is after last row {self.last_row}."
            )
        if self.sheet_pattern:
            try:
                re.compile(self.sheet_pattern)
            except re.error as exc:
                raise ConfigurationError(f"Invalid sheet pattern {self.sheet_pattern!r}: {exc}") from exc

    @property
    def filters_rows(self) -> bool:
        return self.first_row is not None or self.last_row is not None

    def includes_row(self, row_number: int) -> bool:
        if self.first_row is not None and row_number < self.first_row:
            return False
        if self.last_row is not None and row_number > self.last_row:
            return False
        return True

    def includes_sheet(self, sheet_name: str) -> bool:
        if not self.sheet_pattern:
            return True
        return re.search(self.sheet_pattern, sheet_name) is not None
