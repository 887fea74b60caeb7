from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

from rich.console import Console


@dataclass(slots=True)
class CLIContext:
    console: Console
    output: TextIO
