from __future__ import annotations


def local_tag(tag: str) -> str:
    """Strip an ElementTree ``{namespace}`` or a ``prefix:`` qualifier from a tag name."""
    if "}" in tag:
        return tag.split("}", 1)[1]
    if ":" in tag:
        return tag.split(":", 1)[1]
    return tag
