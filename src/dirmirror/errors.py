"""Error taxonomy shared by the mirror components."""
from __future__ import annotations


class MirrorError(Exception):
    """Base class for all mirror errors."""


class NotFound(MirrorError):
    """The addressed node is absent, usually a benign race with a delete."""


class NotAcceptable(MirrorError):
    """The requested content format does not match the node's format."""


class IOFault(MirrorError):
    """Reading content from disk failed."""


class WatchLoopFault(MirrorError):
    """The watch primitive failed; the consumption loop has stopped for good."""


class InitializationFailure(MirrorError, ValueError):
    """The root path cannot be mirrored."""
