"""Directory mirror: wires the tree, the watcher and the host together."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .content_types import ContentFormat
from .errors import InitializationFailure, NotFound, WatchLoopFault
from .host import Exchange, LocalHost, ResourceHost, ResponseCode, join_path
from .nodes import Node, ResourceNode
from .tree import ResourceTreeSync
from .watcher import PathWatcher, WatchService

logger = logging.getLogger(__name__)


class DirectoryMirror:
    """Exports a directory, its files and its subdirectories as a live node tree.

    Every file and directory below ``root_path`` becomes one node mounted under
    ``name`` in ``host``. Directories answer reads with the names of their
    children; files answer with their current content. Only reads are
    supported. Nodes are observable: files signal ``changed`` when modified
    and ``removed`` when deleted, directories signal ``changed`` when an entry
    is added or removed.

    Renames are seen as a delete followed by a create, so subscriptions to a
    renamed file end. Requests that try to leave the root (``..``) are
    answered with 4.04.
    """

    def __init__(
        self,
        name: str,
        root_path: Union[str, Path],
        host: Optional[ResourceHost] = None,
        *,
        backend: str = "native",
        poll_interval: float = 1.0,
        service: Optional[WatchService] = None,
        parent: str = "",
    ):
        root = Path(root_path).absolute()
        if not os.path.isdir(root) or os.path.islink(root):
            raise InitializationFailure(f"The specified path is not a directory: {root_path}")

        self.name = name
        self.root_path = root
        self.host = host if host is not None else LocalHost()
        self._service = service if service is not None else WatchService(backend=backend, poll_interval=poll_interval)
        self.mount = join_path(parent, name)
        self.tree = ResourceTreeSync(root, self._service, self.host, self.mount)
        try:
            self.host.add_child(parent, name, ResourceNode(self.tree, ""))
        except KeyError as exc:
            self._service.close()
            raise InitializationFailure(f"Cannot mount {name} below {parent!r}: {exc}") from exc
        try:
            self.tree.build_initial_tree()
        except InitializationFailure:
            self._abort()
            raise
        except OSError as exc:
            self._abort()
            raise InitializationFailure(f"Cannot mirror {root}: {exc}") from exc

        self.watcher = PathWatcher(root, self._service, self.tree)
        self.watcher.start()
        logger.info("Mirroring %s as /%s", root, self.mount)

    def _abort(self) -> None:
        self._service.close()
        self.host.remove(self.mount)

    # -- liveness --------------------------------------------------------------

    @property
    def is_watching(self) -> bool:
        return self.watcher.is_alive

    @property
    def fault(self) -> Optional[WatchLoopFault]:
        return self.watcher.fault

    def close(self) -> None:
        self.watcher.stop()
        logger.info("Stopped mirroring %s", self.root_path)

    def __enter__(self) -> "DirectoryMirror":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- reads -----------------------------------------------------------------

    def find(self, relative_path: str) -> Optional[Node]:
        return self.tree.find_node(relative_path)

    def listing(self, relative_path: str = "") -> List[str]:
        node = self.tree.find_node(relative_path)
        names = self.tree.list_children(node.node_id) if node is not None else None
        if names is None:
            raise NotFound(relative_path)
        return names

    def read(
        self, relative_path: str = "", requested_format: int = ContentFormat.UNDEFINED
    ) -> Tuple[bytes, Optional[int]]:
        """Read the node at ``relative_path``; raises NotFound, NotAcceptable or IOFault."""

        node = self.tree.find_node(relative_path)
        if node is None:
            raise NotFound(relative_path)
        return ResourceNode(self.tree, node.node_id).read(requested_format)

    def handle_get(self, relative_path: str, exchange: Exchange) -> None:
        node = self.tree.find_node(relative_path)
        if node is None:
            exchange.accept()
            exchange.respond(ResponseCode.NOT_FOUND)
            return
        ResourceNode(self.tree, node.node_id).handle_get(exchange)

