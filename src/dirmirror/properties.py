"""Key/value map exported as one child path per key."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, MutableMapping, Optional

from .host import Exchange, Resource, ResponseCode

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = "."


class PropertiesResource(Resource):
    """Exposes a mapping where every key is addressable as a sub path.

    With the default separator the key ``a.b.c`` lives at ``<name>/a/b/c``.
    A separator of ``None`` keeps keys flat. Keys are virtual children: the
    resource answers every request below its own path itself.
    """

    handles_subpaths = True

    def __init__(self, properties: Optional[MutableMapping[str, Any]] = None, *, separator: Optional[str] = DEFAULT_SEPARATOR):
        super().__init__()
        self.properties: MutableMapping[str, Any] = properties if properties is not None else {}
        self.separator = separator

    def handle_get(self, exchange: Exchange) -> None:
        key = self._target_key(exchange)
        if key is None:
            exchange.respond(ResponseCode.CONTENT, self._render_all())
            return
        value = self.properties.get(key)
        if value is None:
            exchange.respond(ResponseCode.NOT_FOUND, f"Did not find property {key}".encode("utf-8"))
            return
        exchange.respond(ResponseCode.CONTENT, str(value).encode("utf-8"))

    def handle_put(self, exchange: Exchange) -> None:
        key = self._target_key(exchange)
        if key is None:
            exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)
            return
        value = exchange.request_text
        if exchange.if_none_match:
            if key in self.properties:
                exchange.respond(ResponseCode.PRECONDITION_FAILED)
                return
            self.properties[key] = value
            exchange.respond(ResponseCode.CREATED, location_path=self._key_to_path(key))
            return

        previous = self.properties.get(key)
        self.properties[key] = value
        if previous is not None:
            exchange.respond(ResponseCode.CHANGED)
        else:
            exchange.respond(ResponseCode.CREATED, location_path=self._key_to_path(key))
        logger.debug("Property %s set", key)

    def handle_delete(self, exchange: Exchange) -> None:
        key = self._target_key(exchange)
        if key is None:
            exchange.respond(ResponseCode.METHOD_NOT_ALLOWED)
            return
        if self.properties.pop(key, None) is None:
            exchange.respond(ResponseCode.NOT_FOUND)
        else:
            exchange.respond(ResponseCode.DELETED)

    def discoverable_children(self) -> List[str]:
        return [self._relative_path(str(key)) for key in sorted(self.properties, key=str)]

    def _target_key(self, exchange: Exchange) -> Optional[str]:
        own = [segment for segment in self.uri.split("/") if segment]
        remaining = exchange.uri_path[len(own):]
        if not remaining:
            return None
        return (self.separator or "/").join(remaining)

    def _relative_path(self, key: str) -> str:
        return key.replace(self.separator, "/") if self.separator else key

    def _key_to_path(self, key: str) -> str:
        return f"{self.uri}/{self._relative_path(key)}"

    def _render_all(self) -> bytes:
        items: Dict[str, str] = {str(key): str(value) for key, value in self.properties.items()}
        return "\n".join(f"{key}={items[key]}" for key in sorted(items)).encode("utf-8")
