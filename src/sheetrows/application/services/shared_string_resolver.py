from __future__ import annotations

from collections.abc import Sequence

from sheetrows.core.errors import SharedStringIndexError


class SharedStringResolver:
    """Lookup-only view over a workbook's shared-string table."""

    def __init__(self, table: Sequence[str]) -> None:
        self._table = table

    def __len__(self) -> int:
        return len(self._table)

    def resolve(self, index: int) -> str:
        if not 0 <= index < len(self._table):
            raise SharedStringIndexError(
                f"Shared string index {index} out of range (table has {len(self._table)} entries)"
            )
        return self._table[index]
