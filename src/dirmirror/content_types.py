"""Filename suffix to content-format lookup."""
from __future__ import annotations

from typing import List, Optional, Tuple


class ContentFormat:
    """Numeric content-format identifiers (CoAP content-format registry)."""

    UNDEFINED = -1
    TEXT_PLAIN = 0
    TEXT_XML = 1
    TEXT_CSV = 2
    TEXT_HTML = 3
    IMAGE_GIF = 21
    IMAGE_JPEG = 22
    IMAGE_PNG = 23
    IMAGE_TIFF = 24
    APPLICATION_LINK_FORMAT = 40
    APPLICATION_XML = 41
    APPLICATION_OCTET_STREAM = 42
    APPLICATION_JSON = 50


SUFFIX_FORMATS: List[Tuple[str, int]] = [
    (".txt", ContentFormat.TEXT_PLAIN),
    (".html", ContentFormat.TEXT_HTML),
    (".csv", ContentFormat.TEXT_CSV),
    (".json", ContentFormat.APPLICATION_JSON),
    (".gif", ContentFormat.IMAGE_GIF),
    (".jpeg", ContentFormat.IMAGE_JPEG),
    (".jpg", ContentFormat.IMAGE_JPEG),
    (".png", ContentFormat.IMAGE_PNG),
    (".tiff", ContentFormat.IMAGE_TIFF),
    (".xml", ContentFormat.APPLICATION_XML),
]


def lookup(filename: str) -> Optional[int]:
    """Return the content format for ``filename`` or ``None`` if no suffix matches."""

    for suffix, content_format in SUFFIX_FORMATS:
        if filename.endswith(suffix):
            return content_format
    return None


def is_acceptable(node_format: Optional[int], requested: int) -> bool:
    """Decide whether a node with ``node_format`` may answer a request for ``requested``."""

    if requested == ContentFormat.UNDEFINED:
        return True
    if node_format is None:
        return requested == ContentFormat.TEXT_PLAIN
    return requested == node_format
