from __future__ import annotations

from pathlib import Path

from sheetrows.core.errors import InputFileError


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def require_file(path: Path) -> Path:
    resolved = path.expanduser()
    if not resolved.is_file():
        raise InputFileError(f"Not found or not a file: {path}")
    return resolved
