from __future__ import annotations

import os
from dataclasses import dataclass

from sheetrows.core.errors import ConfigurationError
from sheetrows.domain.models.cell import ErrorCellPolicy

DEFAULT_SEPARATOR = ","
DEFAULT_QUOTE_CHAR = '"'
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, slots=True)
class ConversionSettings:
    separator: str = DEFAULT_SEPARATOR
    quote_char: str = DEFAULT_QUOTE_CHAR
    min_columns: int | None = None
    error_policy: ErrorCellPolicy = ErrorCellPolicy.WRAP
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if len(self.separator) != 1:
            raise ConfigurationError(f"Separator must be a single character, got {self.separator!r}")
        if len(self.quote_char) != 1:
            raise ConfigurationError(f"Quote character must be a single character, got {self.quote_char!r}")
        if self.min_columns is not None and self.min_columns < 0:
            raise ConfigurationError(f"Minimum column count cannot be negative: {self.min_columns}")
        if self.chunk_size < 1:
            raise ConfigurationError(f"Chunk size must be positive: {self.chunk_size}")


def load_settings(
    *,
    separator: str | None = None,
    min_columns: int | None = None,
    error_policy: str | ErrorCellPolicy | None = None,
    chunk_size: int | None = None,
) -> ConversionSettings:
    """Build settings from explicit values, falling back to SHEETROWS_* environment variables."""
    sep = separator if separator is not None else os.getenv("SHEETROWS_SEPARATOR", DEFAULT_SEPARATOR)
    if sep == "\\t":
        sep = "\t"

    policy_raw = error_policy if error_policy is not None else os.getenv("SHEETROWS_ERROR_CELLS")
    try:
        policy = ErrorCellPolicy(str(policy_raw).strip().lower()) if policy_raw else ErrorCellPolicy.WRAP
    except ValueError as exc:
        allowed = ", ".join(p.value for p in ErrorCellPolicy)
        raise ConfigurationError(f"Unknown error cell policy {policy_raw!r}. Expected one of: {allowed}") from exc

    size = chunk_size if chunk_size is not None else _read_int_env("SHEETROWS_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)

    return ConversionSettings(
        separator=sep,
        min_columns=min_columns if min_columns is not None and min_columns > 0 else None,
        error_policy=policy,
        chunk_size=size,
    )


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
