"""Boundary towards the request-serving host, plus an in-process host."""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from .content_types import ContentFormat

logger = logging.getLogger(__name__)


class ResponseCode(str, Enum):
    """Response codes understood by the host protocol."""

    CREATED = "2.01"
    DELETED = "2.02"
    CHANGED = "2.04"
    CONTENT = "2.05"
    NOT_FOUND = "4.04"
    METHOD_NOT_ALLOWED = "4.05"
    NOT_ACCEPTABLE = "4.06"
    PRECONDITION_FAILED = "4.12"
    INTERNAL_SERVER_ERROR = "5.00"


class SignalType(str, Enum):
    """Notifications a resource raises towards its subscribers."""

    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(frozen=True)
class Response:
    """A response as delivered to a client or subscriber."""

    code: ResponseCode
    payload: bytes = b""
    content_format: Optional[int] = None
    location_path: Optional[str] = None

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


class Exchange(ABC):
    """One inbound request and its response channel."""

    method: str = "GET"
    uri_path: List[str]
    content_format: int = ContentFormat.UNDEFINED
    payload: bytes = b""
    if_none_match: bool = False

    @property
    def request_text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")

    @abstractmethod
    def accept(self) -> None:
        """Acknowledge receipt before a possibly slow response."""

    @abstractmethod
    def respond(
        self,
        code: ResponseCode,
        payload: Optional[bytes] = None,
        content_format: Optional[int] = None,
        *,
        location_path: Optional[str] = None,
    ) -> None:
        """Send the response."""


class LocalExchange(Exchange):
    """Exchange that records its response in memory."""

    def __init__(
        self,
        method: str = "GET",
        uri_path: Iterable[str] = (),
        *,
        content_format: int = ContentFormat.UNDEFINED,
        payload: bytes = b"",
        if_none_match: bool = False,
    ) -> None:
        self.method = method.upper()
        self.uri_path = [segment for segment in uri_path if segment]
        self.content_format = content_format
        self.payload = payload
        self.if_none_match = if_none_match
        self.accepted = False
        self.response: Optional[Response] = None

    def accept(self) -> None:
        self.accepted = True

    def respond(
        self,
        code: ResponseCode,
        payload: Optional[bytes] = None,
        content_format: Optional[int] = None,
        *,
        location_path: Optional[str] = None,
    ) -> None:
        self.response = Response(
            code=code,
            payload=payload or b"",
            content_format=content_format,
            location_path=location_path,
        )


class Resource:
    """Base request handler; every method defaults to 4.05."""

    #: Route requests for any path below this resource to it.
    handles_subpaths = False

    def __init__(self) -> None:
        self.uri = ""

    def handle_get(self, exchange: Exchange) -> None:
        exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)

    def handle_post(self, exchange: Exchange) -> None:
        exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)

    def handle_put(self, exchange: Exchange) -> None:
        exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)

    def handle_delete(self, exchange: Exchange) -> None:
        exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)

    def discoverable_children(self) -> List[str]:
        """Relative paths of virtual children, for discovery only."""

        return []


class ResourceHost(ABC):
    """Operations the mirror consumes from the hosting framework."""

    @abstractmethod
    def add_child(self, parent: str, name: str, resource: Resource) -> str:
        """Attach ``resource`` as ``name`` below ``parent``; return its path."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Detach the resource at ``path`` together with its subtree."""

    @abstractmethod
    def set_observable(self, path: str) -> None:
        """Allow clients to subscribe to changes of ``path``."""

    @abstractmethod
    def changed(self, path: str) -> None:
        """Push a fresh representation of ``path`` to its subscribers."""

    @abstractmethod
    def removed(self, path: str) -> None:
        """Tell subscribers of ``path`` that the resource is gone."""


Subscriber = Callable[[str, Response], None]
Listener = Callable[[SignalType, str], None]


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


class LocalHost(ResourceHost):
    """Thread-safe in-process host used by the entry point and the tests."""

    def __init__(self, *, signal_history: int = 1024) -> None:
        self._lock = threading.RLock()
        self._resources: Dict[str, Resource] = {}
        self._observable: Set[str] = set()
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._listeners: List[Listener] = []
        self.signals: Deque[Tuple[SignalType, str]] = deque(maxlen=signal_history)

    def add_child(self, parent: str, name: str, resource: Resource) -> str:
        path = join_path(parent, name)
        with self._lock:
            if parent and parent not in self._resources:
                raise KeyError(f"Parent resource {parent!r} is not registered")
            resource.uri = path
            self._resources[path] = resource
        return path

    def remove(self, path: str) -> None:
        prefix = path + "/"
        with self._lock:
            for key in [key for key in self._resources if key == path or key.startswith(prefix)]:
                del self._resources[key]
                self._observable.discard(key)
                self._subscribers.pop(key, None)

    def set_observable(self, path: str) -> None:
        with self._lock:
            self._observable.add(path)

    def is_observable(self, path: str) -> bool:
        with self._lock:
            return path in self._observable

    def get_resource(self, path: str) -> Optional[Resource]:
        with self._lock:
            return self._resources.get(path)

    def subscribe(self, path: str, callback: Subscriber) -> None:
        with self._lock:
            if path not in self._observable:
                raise ValueError(f"Resource {path!r} is not observable")
            self._subscribers.setdefault(path, []).append(callback)

    def add_listener(self, listener: Listener) -> None:
        """Receive every signal raised on any resource."""

        with self._lock:
            self._listeners.append(listener)

    def changed(self, path: str) -> None:
        self._record(SignalType.CHANGED, path)
        with self._lock:
            callbacks = list(self._subscribers.get(path, ()))
        if not callbacks:
            return
        exchange = LocalExchange("GET", path.split("/"))
        self.dispatch(exchange)
        if exchange.response is None:
            return
        for callback in callbacks:
            self._notify(callback, path, exchange.response)

    def removed(self, path: str) -> None:
        self._record(SignalType.REMOVED, path)
        with self._lock:
            callbacks = self._subscribers.pop(path, [])
        for callback in callbacks:
            self._notify(callback, path, Response(code=ResponseCode.NOT_FOUND))

    def request(
        self,
        method: str,
        path: str,
        *,
        content_format: int = ContentFormat.UNDEFINED,
        payload: bytes = b"",
        if_none_match: bool = False,
    ) -> Response:
        """Convenience wrapper: build an exchange, dispatch it and return the response."""

        exchange = LocalExchange(
            method,
            path.strip("/").split("/"),
            content_format=content_format,
            payload=payload,
            if_none_match=if_none_match,
        )
        self.dispatch(exchange)
        assert exchange.response is not None
        return exchange.response

    def dispatch(self, exchange: Exchange) -> None:
        resource = self._route(exchange.uri_path)
        if resource is None:
            exchange.respond(ResponseCode.NOT_FOUND)
            return
        handler = {
            "GET": resource.handle_get,
            "POST": resource.handle_post,
            "PUT": resource.handle_put,
            "DELETE": resource.handle_delete,
        }.get(exchange.method)
        if handler is None:
            exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)
            return
        handler(exchange)
        if exchange.response is None:
            logger.warning("Resource %s did not respond to %s", resource.uri, exchange.method)
            exchange.respond(ResponseCode.INTERNAL_SERVER_ERROR)

    def discover(self) -> List[str]:
        """List every addressable path, including virtual children."""

        with self._lock:
            items = sorted(self._resources.items())
        links: List[str] = []
        for path, resource in items:
            links.append("/" + path)
            links.extend(f"/{path}/{child}" for child in resource.discoverable_children())
        return links

    def _route(self, segments: List[str]) -> Optional[Resource]:
        with self._lock:
            path = ""
            for segment in segments:
                path = join_path(path, segment)
                resource = self._resources.get(path)
                if resource is None:
                    return None
                if resource.handles_subpaths:
                    return resource
            return self._resources.get(path) if path else None

    def _record(self, signal: SignalType, path: str) -> None:
        self.signals.append((signal, path))
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(signal, path)
            except Exception:  # pragma: no cover - protective logging
                logger.exception("Listener failed for %s signal on %s", signal.value, path)

    @staticmethod
    def _notify(callback: Subscriber, path: str, response: Response) -> None:
        try:
            callback(path, response)
        except Exception:  # pragma: no cover - protective logging
            logger.exception("Subscriber for %s failed", path)
