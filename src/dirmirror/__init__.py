"""dirmirror package: live mirror of a directory tree as observable resources."""

from .content_types import ContentFormat
from .errors import (
    InitializationFailure,
    IOFault,
    MirrorError,
    NotAcceptable,
    NotFound,
    WatchLoopFault,
)
from .events import WatchEvent, WatchEventKind
from .host import Exchange, LocalExchange, LocalHost, Resource, ResourceHost, Response, ResponseCode, SignalType
from .mirror import DirectoryMirror
from .nodes import Node, NodeKind, ResourceNode
from .properties import PropertiesResource
from .tree import ResourceTreeSync
from .watcher import PathWatcher, WatchService, WatchServiceClosed

__all__ = [
    "DirectoryMirror",
    "ResourceTreeSync",
    "PathWatcher",
    "WatchService",
    "WatchServiceClosed",
    "ResourceNode",
    "Node",
    "NodeKind",
    "PropertiesResource",
    "ContentFormat",
    "WatchEvent",
    "WatchEventKind",
    "Exchange",
    "LocalExchange",
    "LocalHost",
    "Resource",
    "ResourceHost",
    "Response",
    "ResponseCode",
    "SignalType",
    "MirrorError",
    "NotFound",
    "NotAcceptable",
    "IOFault",
    "WatchLoopFault",
    "InitializationFailure",
]
