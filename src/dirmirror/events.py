"""Logical watch events consumed by the tree synchronizer."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WatchEventKind(str, Enum):
    """Kinds of filesystem changes decoded from the watch primitive."""

    CREATE = "create"
    DELETE = "delete"
    MODIFY = "modify"
    OVERFLOW = "overflow"


@dataclass(frozen=True)
class WatchEvent:
    """A single change, addressed relative to the mirrored root.

    ``path`` is a POSIX relative path; the empty string names the root itself.
    Overflow events carry no path.
    """

    kind: WatchEventKind
    path: str = ""
