from __future__ import annotations

from typing import IO, Any
from xml.etree import ElementTree as ET

from sheetrows.core.config import DEFAULT_CHUNK_SIZE


def feed_sheet(stream: IO[bytes], target: Any, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
    """Push one sheet's markup through ``target`` as start/data/end events, chunk by chunk."""
    parser = ET.XMLParser(target=target)
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        parser.feed(chunk)
    parser.close()
