"""Keeps the mirror tree consistent with the directory tree on disk."""
from __future__ import annotations

import logging
import os
import stat
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .content_types import lookup
from .errors import InitializationFailure
from .events import WatchEvent, WatchEventKind
from .host import ResourceHost, join_path
from .nodes import Node, NodeKind, ResourceNode

if TYPE_CHECKING:
    from .watcher import WatchService

logger = logging.getLogger(__name__)


class ResourceTreeSync:
    """Owns the node arena and applies watch events to it.

    Mutations run on a single thread (the initial build on the caller, then the
    watcher loop). Readers on other threads go through ``find_node``, ``get``
    and ``list_children``, which take the same lock; a structural change is
    applied inside a single lock hold so readers never see half of it.
    """

    def __init__(self, root_path: Path, service: "WatchService", host: ResourceHost, mount: str):
        self.root_path = root_path
        self.resolved_root = root_path.resolve()
        self.mount = mount
        self._service = service
        self._host = host
        self._lock = threading.RLock()
        self._nodes: Dict[str, Node] = {}

    # -- paths ---------------------------------------------------------------

    def absolute_path(self, node_id: str) -> Path:
        return self.root_path / node_id if node_id else self.root_path

    def host_path(self, node_id: str) -> str:
        return join_path(self.mount, node_id) if node_id else self.mount

    # -- building --------------------------------------------------------------

    def build_initial_tree(self) -> None:
        """Walk the root directory, register every directory and publish all nodes."""

        logger.info("Building mirror tree for %s", self.root_path)
        collected: List[Node] = []
        if not self._walk(self.root_path, "", None, collected):
            raise InitializationFailure(f"Root directory disappeared: {self.root_path}")
        with self._lock:
            self._nodes = {node.node_id: node for node in collected}
        self._host.set_observable(self.mount)
        self._publish(collected[1:])
        logger.info("Mirror tree for %s holds %s nodes", self.root_path, len(collected))

    def _walk(self, directory: Path, node_id: str, parent_id: Optional[str], collected: List[Node]) -> bool:
        # Pre-order; the directory is registered before it is listed so that
        # entries created during the walk still raise an event.
        if not self._register(directory):
            return False
        name = node_id.rpartition("/")[2] if node_id else directory.name
        node = Node(node_id, name, NodeKind.DIRECTORY, parent_id, content_format=lookup(name))
        collected.append(node)

        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except FileNotFoundError:
            logger.debug("Directory %s vanished while listing", directory)
            return True
        except OSError as exc:
            logger.warning("Cannot list directory %s: %s", directory, exc)
            return True

        for entry in entries:
            child_id = join_path(node_id, entry.name)
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            if is_dir:
                if self._walk(Path(entry.path), child_id, node_id, collected):
                    node.children[entry.name] = child_id
                continue
            collected.append(
                Node(child_id, entry.name, NodeKind.LEAF, node_id, content_format=lookup(entry.name))
            )
            node.children[entry.name] = child_id
        return True

    def _register(self, directory: Path) -> bool:
        try:
            self._service.register(directory)
        except FileNotFoundError:
            logger.debug("Directory %s vanished before it could be watched", directory)
            return False
        return True

    def _publish(self, nodes: List[Node]) -> None:
        for node in nodes:
            assert node.parent_id is not None
            path = self._host.add_child(self.host_path(node.parent_id), node.name, ResourceNode(self, node.node_id))
            self._host.set_observable(path)

    # -- events ----------------------------------------------------------------

    def apply(self, event: WatchEvent) -> None:
        if event.kind is WatchEventKind.CREATE:
            self.on_create(event.path)
        elif event.kind is WatchEventKind.DELETE:
            self.on_delete(event.path)
        elif event.kind is WatchEventKind.MODIFY:
            self.on_modify(event.path)
        else:
            logger.debug("Dropping %s event", event.kind.value)

    def on_create(self, relative_path: str) -> None:
        parent_id, _, name = relative_path.rpartition("/")
        if not name:
            return
        with self._lock:
            parent = self._nodes.get(parent_id)
            if parent is None or not parent.is_directory:
                logger.debug("Dropping create of %s: parent is not mirrored", relative_path)
                return
            existing_id = parent.children.get(name)
            existing = self._nodes.get(existing_id) if existing_id is not None else None

        path = self.absolute_path(relative_path)
        try:
            is_dir = stat.S_ISDIR(os.lstat(path).st_mode)
        except FileNotFoundError:
            logger.debug("Dropping create of %s: entry already gone", relative_path)
            return

        if existing is not None and existing.is_directory == is_dir:
            logger.debug("Ignoring duplicate create of %s", relative_path)
            return

        collected: List[Node] = []
        if is_dir:
            if not self._walk(path, relative_path, parent_id, collected):
                return
        else:
            collected.append(Node(relative_path, name, NodeKind.LEAF, parent_id, content_format=lookup(name)))

        doomed: List[Node] = []
        tops: List[Node] = []
        with self._lock:
            if existing is not None:
                # Entry changed kind: swap the old subtree for the new one in one step.
                doomed, tops = self._detach(existing)
            parent = self._nodes[parent_id]
            for node in collected:
                self._nodes[node.node_id] = node
            parent.children = {**parent.children, name: relative_path}

        self._retire(doomed, tops)
        self._publish(collected)
        self._host.changed(self.host_path(parent_id))
        logger.debug("Mirrored new %s (%s nodes)", relative_path, len(collected))

    def on_delete(self, relative_path: str) -> None:
        with self._lock:
            node = self._nodes.get(relative_path)
            if node is None:
                logger.debug("Ignoring delete of unknown %s", relative_path)
                return
            doomed, tops = self._detach(node)

        self._retire(doomed, tops)

        if node.parent_id is None:
            logger.warning("Mirrored root %s was deleted; the mirror is now empty", self.root_path)
            self._service.unregister(self.root_path)
            self._host.changed(self.mount)
        else:
            self._host.changed(self.host_path(node.parent_id))
        logger.debug("Removed %s (%s nodes)", relative_path or "/", len(doomed))

    def on_modify(self, relative_path: str) -> None:
        with self._lock:
            present = relative_path in self._nodes
        if not present:
            logger.debug("Ignoring modify of unknown %s", relative_path)
            return
        self._host.changed(self.host_path(relative_path))

    def _detach(self, node: Node) -> Tuple[List[Node], List[Node]]:
        """Unlink ``node`` and its descendants from the arena; the caller holds the lock.

        Detaching the root keeps the root node and drops its children. Returns
        every removed node (children first) and the tops of the removed subtrees.
        """

        if node.parent_id is None:
            tops = [self._nodes[child_id] for child_id in node.children.values()]
            node.children = {}
        else:
            tops = [node]
            parent = self._nodes[node.parent_id]
            parent.children = {key: value for key, value in parent.children.items() if key != node.name}
        doomed: List[Node] = []
        for top in tops:
            doomed.extend(self._subtree(top))
        for victim in doomed:
            del self._nodes[victim.node_id]
        return doomed, tops

    def _retire(self, doomed: List[Node], tops: List[Node]) -> None:
        for victim in doomed:
            if victim.is_directory:
                self._service.unregister(self.absolute_path(victim.node_id))
            self._host.removed(self.host_path(victim.node_id))
        for top in tops:
            self._host.remove(self.host_path(top.node_id))

    def _subtree(self, node: Node) -> List[Node]:
        """Return ``node`` and its descendants, children first."""

        ordered: List[Node] = []
        for child_id in node.children.values():
            child = self._nodes.get(child_id)
            if child is not None:
                ordered.extend(self._subtree(child))
        ordered.append(node)
        return ordered

    # -- reads -----------------------------------------------------------------

    def find_node(self, relative_path: str) -> Optional[Node]:
        """Resolve ``relative_path`` segment by segment; ``None`` if any segment is missing."""

        stripped = relative_path.strip("/")
        segments = stripped.split("/") if stripped else []
        with self._lock:
            node = self._nodes.get("")
            for segment in segments:
                if node is None or not node.is_directory or segment in ("", ".", ".."):
                    return None
                child_id = node.children.get(segment)
                if child_id is None:
                    return None
                node = self._nodes.get(child_id)
            return node

    def get(self, node_id: str) -> Optional[Node]:
        with self._lock:
            return self._nodes.get(node_id)

    def list_children(self, node_id: str) -> Optional[List[str]]:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None or not node.is_directory:
                return None
            return sorted(node.children)

    def paths(self) -> List[str]:
        with self._lock:
            return sorted(self._nodes)

    def directories(self) -> List[str]:
        with self._lock:
            return sorted(node_id for node_id, node in self._nodes.items() if node.is_directory)
