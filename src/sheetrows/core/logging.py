from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def configure_logging(verbosity: int = 0) -> None:
    level = _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbosity > 1,
        rich_tracebacks=verbosity > 1,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
