from __future__ import annotations

import os
import queue
import time
from pathlib import Path
from typing import Callable, List, Set

import pytest

from dirmirror.host import LocalHost
from dirmirror.nodes import ResourceNode
from dirmirror.tree import ResourceTreeSync
from dirmirror.watcher import WatchServiceClosed


class FakeWatchService:
    """In-memory stand-in for the watchdog-backed service."""

    def __init__(self) -> None:
        self.registered: Set[Path] = set()
        self.unregistered: List[Path] = []
        self.closed = False
        self._batches: "queue.Queue[object]" = queue.Queue()

    def register(self, directory: Path) -> None:
        if not directory.is_dir():
            raise FileNotFoundError(str(directory))
        self.registered.add(directory)

    def unregister(self, directory: Path) -> None:
        self.registered.discard(directory)
        self.unregistered.append(directory)

    def push(self, *events) -> None:
        self._batches.put(list(events))

    def fail(self, exc: Exception) -> None:
        self._batches.put(exc)

    def take(self):
        item = self._batches.get()
        if item is None:
            raise WatchServiceClosed()
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._batches.put(None)


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def make_undecodable_file(directory: Path, content: bytes = b"raw") -> str:
    """Create a file whose name is not valid UTF-8 and return that name as ``os.scandir`` reports it."""

    raw_name = b"bad\xff.txt"
    try:
        with open(os.path.join(os.fsencode(directory), raw_name), "wb") as handle:
            handle.write(content)
    except OSError as exc:
        pytest.skip(f"filesystem rejects non UTF-8 names: {exc}")
    return os.fsdecode(raw_name)


@pytest.fixture
def service() -> FakeWatchService:
    return FakeWatchService()


@pytest.fixture
def host() -> LocalHost:
    return LocalHost()


@pytest.fixture
def make_tree(service, host):
    def factory(root: Path) -> ResourceTreeSync:
        tree = ResourceTreeSync(root, service, host, "fs")
        host.add_child("", "fs", ResourceNode(tree, ""))
        tree.build_initial_tree()
        return tree

    return factory
