from __future__ import annotations

import string

from sheetrows.core.errors import MalformedReferenceError
from sheetrows.domain.models.cell import CellReference

_LETTERS = frozenset(string.ascii_uppercase)


def column_index(name: str) -> int:
    """Convert an Excel column name such as ``"C"`` or ``"AA"`` to a zero-based index."""
    if not name or not set(name) <= _LETTERS:
        raise ValueError(f"Invalid column name: {name!r}")
    column = -1
    for ch in name:
        column = (column + 1) * 26 + (ord(ch) - ord("A"))
    return column


def column_name(index: int) -> str:
    if index < 0:
        raise ValueError(f"Invalid column index: {index}")
    chars: list[str] = []
    value = index + 1
    while value:
        value, rem = divmod(value - 1, 26)
        chars.append(string.ascii_uppercase[rem])
    return "".join(reversed(chars))


def _first_digit(ref: str) -> int:
    for pos, ch in enumerate(ref):
        if ch.isdigit():
            return pos
    raise MalformedReferenceError(f"Reference has no row number: {ref!r}")


def split_reference(ref: str) -> CellReference:
    split_at = _first_digit(ref)
    letters = ref[:split_at]
    try:
        row = int(ref[split_at:])
        column_index(letters)
    except ValueError as exc:
        raise MalformedReferenceError(f"Malformed cell reference: {ref!r}") from exc
    return CellReference(column_letters=letters, row_number=row)


def row_number(ref: str) -> int:
    """Return the row number of a row ``r`` attribute, using the same first-digit scan as cells."""
    split_at = _first_digit(ref)
    try:
        return int(ref[split_at:])
    except ValueError as exc:
        raise MalformedReferenceError(f"Malformed row reference: {ref!r}") from exc
