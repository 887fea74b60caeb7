from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class SheetEntry:
    name: str
    index: int
    part_path: str
    state: str = "visible"


@dataclass(frozen=True, slots=True)
class StyleFormat:
    num_fmt_id: int
    format_code: str | None = None


@dataclass(slots=True)
class SheetReport:
    name: str
    index: int
    rows_written: int = 0
    rows_skipped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ConversionReport:
    sheets: list[SheetReport] = field(default_factory=list)
    sheets_filtered: int = 0

    @property
    def ok(self) -> bool:
        return all(sheet.ok for sheet in self.sheets)

    @property
    def rows_written(self) -> int:
        return sum(sheet.rows_written for sheet in self.sheets)
