"""Watch primitive wrapper and the event consumption loop."""
from __future__ import annotations

import errno
import logging
import os
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch
from watchdog.observers.polling import PollingObserver

from .errors import WatchLoopFault
from .events import WatchEvent, WatchEventKind

if TYPE_CHECKING:
    from .tree import ResourceTreeSync

logger = logging.getLogger(__name__)

BACKENDS = ("native", "polling")

_KINDS = {
    EVENT_TYPE_CREATED: WatchEventKind.CREATE,
    EVENT_TYPE_DELETED: WatchEventKind.DELETE,
    EVENT_TYPE_MODIFIED: WatchEventKind.MODIFY,
}


class WatchServiceClosed(Exception):
    """Raised by ``WatchService.take`` once the service has been closed."""


class _QueueingHandler(FileSystemEventHandler):
    """Hands every raw event from the observer threads to the consumption loop."""

    def __init__(self, events: "queue.Queue[Optional[FileSystemEvent]]") -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(event)


class WatchService:
    """Per-directory, non-recursive watch registrations on top of watchdog."""

    def __init__(self, *, backend: str = "native", poll_interval: float = 1.0, liveness_interval: float = 1.0):
        if backend == "native":
            self._observer = Observer()
        elif backend == "polling":
            self._observer = PollingObserver(timeout=poll_interval)
        else:
            raise ValueError(f"Unknown watch backend {backend!r}; expected one of {', '.join(BACKENDS)}")
        self.backend = backend
        self._liveness_interval = liveness_interval
        self._events: "queue.Queue[Optional[FileSystemEvent]]" = queue.Queue()
        self._handler = _QueueingHandler(self._events)
        self._watches: Dict[Path, ObservedWatch] = {}
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._observer.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def registered(self) -> List[Path]:
        with self._lock:
            return sorted(self._watches)

    def register(self, directory: Path) -> ObservedWatch:
        """Watch ``directory`` for entries being created, deleted or modified."""

        if self._closed.is_set():
            raise WatchServiceClosed(f"Cannot register {directory}: service is closed")
        if not os.path.isdir(directory):
            raise FileNotFoundError(errno.ENOENT, "No such directory", str(directory))
        with self._lock:
            watch = self._watches.get(directory)
            if watch is None:
                watch = self._observer.schedule(self._handler, str(directory), recursive=False)
                self._watches[directory] = watch
                logger.debug("Registered watch for %s", directory)
        return watch

    def unregister(self, directory: Path) -> None:
        with self._lock:
            watch = self._watches.pop(directory, None)
        if watch is None:
            return
        try:
            self._observer.unschedule(watch)
        except KeyError:
            logger.debug("Watch for %s was already gone", directory)
        logger.debug("Released watch for %s", directory)

    def take(self) -> List[FileSystemEvent]:
        """Block for the next event, then drain everything already queued with it."""

        while True:
            try:
                first = self._events.get(timeout=self._liveness_interval)
            except queue.Empty:
                if not self._closed.is_set() and not self._observer.is_alive():
                    raise WatchLoopFault("watchdog observer thread stopped unexpectedly")
                continue
            break
        if first is None:
            self._events.put(None)
            raise WatchServiceClosed()

        batch = [first]
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            if event is None:
                # Keep the close marker for the next take().
                self._events.put(None)
                break
            batch.append(event)
        return batch

    def close(self) -> None:
        """Stop watching and unblock any pending ``take``."""

        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._observer.stop()
            self._observer.join(timeout=5.0)
        finally:
            with self._lock:
                self._watches.clear()
            self._events.put(None)


@dataclass
class WatchStats:
    """Counters reported when the consumption loop ends."""

    batches: int = 0
    events_applied: int = 0
    events_dropped: int = 0


class PathWatcher:
    """Runs the consumption loop that feeds decoded events to the tree."""

    def __init__(self, root_path: Path, service: WatchService, tree: "ResourceTreeSync"):
        self._root = root_path
        self._resolved_root = root_path.resolve()
        self._service = service
        self._tree = tree
        self._thread: Optional[threading.Thread] = None
        self.fault: Optional[WatchLoopFault] = None
        self.stats = WatchStats()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Spawn the consumption thread and return immediately."""

        if self._thread is not None:
            raise RuntimeError("PathWatcher can only be started once")
        self._thread = threading.Thread(target=self._run, name=f"dirmirror-watch:{self._root.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._service.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def decode(self, raw: FileSystemEvent) -> List[WatchEvent]:
        """Translate one watchdog event into zero or more logical events."""

        if raw.event_type == EVENT_TYPE_MOVED:
            return self._event(WatchEventKind.DELETE, raw.src_path) + self._event(
                WatchEventKind.CREATE, getattr(raw, "dest_path", "")
            )
        kind = _KINDS.get(raw.event_type)
        if kind is None:
            return []
        if kind is WatchEventKind.MODIFY and raw.is_directory:
            # Entry changes inside a directory already arrive as create/delete.
            return []
        return self._event(kind, raw.src_path)

    def _event(self, kind: WatchEventKind, raw_path) -> List[WatchEvent]:
        if not raw_path:
            return [WatchEvent(WatchEventKind.OVERFLOW)]
        path = Path(os.fsdecode(raw_path))
        relative = self._relative(path)
        if relative is None:
            logger.warning("Ignoring %s event outside of %s: %s", kind.value, self._root, path)
            return []
        posix = relative.as_posix()
        return [WatchEvent(kind, "" if posix == "." else posix)]

    def _relative(self, path: Path) -> Optional[Path]:
        # Some backends report real paths, so also try the resolved root.
        for root in (self._root, self._resolved_root):
            try:
                return path.relative_to(root)
            except ValueError:
                continue
        return None

    def _run(self) -> None:
        logger.info("Watch loop started for %s", self._root)
        try:
            while True:
                try:
                    batch = self._service.take()
                except WatchServiceClosed:
                    break
                for raw in batch:
                    self._dispatch(raw)
                self.stats.batches += 1
        except Exception as exc:
            self.fault = exc if isinstance(exc, WatchLoopFault) else WatchLoopFault(str(exc))
            # No restart: the mirror stays intact but stale from here on.
            logger.exception("Watch loop for %s failed; changes will no longer be mirrored", self._root)
        finally:
            self._service.close()
            logger.info(
                "Watch loop for %s stopped after %s batches, %s events applied, %s dropped",
                self._root,
                self.stats.batches,
                self.stats.events_applied,
                self.stats.events_dropped,
            )

    def _dispatch(self, raw: FileSystemEvent) -> None:
        events = self.decode(raw)
        if not events:
            self.stats.events_dropped += 1
            return
        for event in events:
            if event.kind is WatchEventKind.OVERFLOW:
                logger.warning("Watch overflow under %s; some changes may not be mirrored", self._root)
                self.stats.events_dropped += 1
                continue
            logger.debug("Event %s at %s", event.kind.value, event.path or "/")
            self._tree.apply(event)
            self.stats.events_applied += 1
