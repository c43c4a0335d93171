"""Mirror nodes and the per-node read handler."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from .content_types import ContentFormat, is_acceptable
from .errors import IOFault, NotAcceptable, NotFound
from .host import Exchange, Resource, ResponseCode

if TYPE_CHECKING:
    from .tree import ResourceTreeSync

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    """Whether a node mirrors a directory or anything else."""

    DIRECTORY = "directory"
    LEAF = "leaf"


@dataclass
class Node:
    """Arena record for one mirrored entry.

    ``node_id`` is the POSIX path relative to the mirrored root (``""`` for the
    root). Parent and children are referenced by id, never by object. Only the
    tree synchronizer mutates nodes; readers get snapshots through it.
    """

    node_id: str
    name: str
    kind: NodeKind
    parent_id: Optional[str] = None
    children: Dict[str, str] = field(default_factory=dict)
    content_format: Optional[int] = None

    @property
    def is_directory(self) -> bool:
        return self.kind is NodeKind.DIRECTORY


class ResourceNode(Resource):
    """Read-only request handler bound to one node id."""

    def __init__(self, tree: "ResourceTreeSync", node_id: str) -> None:
        super().__init__()
        self._tree = tree
        self.node_id = node_id

    def read(self, requested_format: int = ContentFormat.UNDEFINED) -> Tuple[bytes, Optional[int]]:
        """Return the current representation and its content format."""

        node = self._tree.get(self.node_id)
        if node is None:
            raise NotFound(self.node_id)
        if not is_acceptable(node.content_format, requested_format):
            raise NotAcceptable(
                f"{self.node_id or '/'} cannot be served as content format {requested_format}"
            )

        if node.is_directory:
            names = self._tree.list_children(self.node_id)
            if names is None:
                raise NotFound(self.node_id)
            # Names that are not valid UTF-8 go out as their raw on-disk bytes.
            return b"\n".join(os.fsencode(name) for name in names), ContentFormat.TEXT_PLAIN

        return self._read_file(self._tree.absolute_path(self.node_id)), node.content_format

    def _read_file(self, path: Path) -> bytes:
        try:
            resolved = path.resolve()
        except (OSError, RuntimeError) as exc:
            raise IOFault(f"Cannot resolve {path}: {exc}") from exc
        if not resolved.is_relative_to(self._tree.resolved_root):
            raise NotFound(f"{path} resolves outside the mirrored root")
        try:
            return resolved.read_bytes()
        except FileNotFoundError as exc:
            raise NotFound(str(path)) from exc
        except OSError as exc:
            raise IOFault(f"Cannot read {path}: {exc}") from exc

    def handle_get(self, exchange: Exchange) -> None:
        exchange.accept()
        try:
            payload, content_format = self.read(exchange.content_format)
        except NotFound:
            exchange.respond(ResponseCode.NOT_FOUND)
        except NotAcceptable:
            exchange.respond(ResponseCode.NOT_ACCEPTABLE)
        except IOFault as exc:
            logger.error("Read of %s failed: %s", self.node_id or "/", exc)
            exchange.respond(ResponseCode.INTERNAL_SERVER_ERROR)
        except Exception:
            logger.exception("Unexpected failure serving %s", self.node_id or "/")
            exchange.respond(ResponseCode.INTERNAL_SERVER_ERROR)
        else:
            exchange.respond(ResponseCode.CONTENT, payload, content_format)

    def __repr__(self) -> str:
        return f"ResourceNode({self.node_id or '/'})"
