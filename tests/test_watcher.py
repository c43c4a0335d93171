import pytest
from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from conftest import wait_for
from dirmirror.errors import WatchLoopFault
from dirmirror.events import WatchEvent, WatchEventKind
from dirmirror.host import SignalType
from dirmirror.nodes import ResourceNode
from dirmirror.tree import ResourceTreeSync
from dirmirror.watcher import PathWatcher, WatchService, WatchServiceClosed


@pytest.fixture
def watcher(tmp_path, make_tree, service):
    tree = make_tree(tmp_path)
    path_watcher = PathWatcher(tmp_path, service, tree)
    yield path_watcher
    path_watcher.stop()


def test_decode_maps_watchdog_events(tmp_path, watcher):
    root = str(tmp_path)

    assert watcher.decode(FileCreatedEvent(f"{root}/a.txt")) == [WatchEvent(WatchEventKind.CREATE, "a.txt")]
    assert watcher.decode(DirCreatedEvent(f"{root}/d")) == [WatchEvent(WatchEventKind.CREATE, "d")]
    assert watcher.decode(FileDeletedEvent(f"{root}/d/x")) == [WatchEvent(WatchEventKind.DELETE, "d/x")]
    assert watcher.decode(DirDeletedEvent(root)) == [WatchEvent(WatchEventKind.DELETE, "")]
    assert watcher.decode(FileModifiedEvent(f"{root}/a.txt")) == [WatchEvent(WatchEventKind.MODIFY, "a.txt")]


def test_decode_splits_moves_into_delete_and_create(tmp_path, watcher):
    event = FileMovedEvent(f"{tmp_path}/old.txt", f"{tmp_path}/new.txt")

    assert watcher.decode(event) == [
        WatchEvent(WatchEventKind.DELETE, "old.txt"),
        WatchEvent(WatchEventKind.CREATE, "new.txt"),
    ]


def test_decode_drops_directory_modifications_and_foreign_events(tmp_path, watcher):
    assert watcher.decode(DirModifiedEvent(str(tmp_path))) == []
    assert watcher.decode(FileClosedEvent(f"{tmp_path}/a.txt")) == []
    assert watcher.decode(FileCreatedEvent("/somewhere/else.txt")) == []


def test_decode_reports_pathless_events_as_overflow(watcher):
    assert watcher.decode(FileModifiedEvent("")) == [WatchEvent(WatchEventKind.OVERFLOW)]


def test_loop_applies_batches_in_order(tmp_path, watcher, service, host):
    watcher.start()
    (tmp_path / "c").mkdir()
    (tmp_path / "c" / "d.txt").write_text("d")

    service.push(
        DirCreatedEvent(str(tmp_path / "c")),
        FileCreatedEvent(str(tmp_path / "c" / "d.txt")),
        FileModifiedEvent(""),
    )

    assert wait_for(lambda: watcher.stats.batches == 1)
    assert watcher.stats.events_applied == 2
    assert watcher.stats.events_dropped == 1
    assert host.request("GET", "fs/c").text == "d.txt"
    assert list(host.signals) == [(SignalType.CHANGED, "fs")]


def test_start_twice_is_rejected(watcher):
    watcher.start()
    with pytest.raises(RuntimeError):
        watcher.start()


def test_closing_the_service_ends_the_loop_cleanly(watcher, service):
    watcher.start()
    assert watcher.is_alive

    watcher.stop()

    assert not watcher.is_alive
    assert watcher.fault is None
    assert service.closed


def test_primitive_failure_stops_the_loop_for_good(tmp_path, watcher, service, host):
    watcher.start()
    service.fail(OSError("inotify went away"))

    assert wait_for(lambda: not watcher.is_alive)
    assert isinstance(watcher.fault, WatchLoopFault)
    assert "inotify went away" in str(watcher.fault)
    assert service.closed

    (tmp_path / "late.txt").write_text("late")
    service.push(FileCreatedEvent(str(tmp_path / "late.txt")))
    assert host.request("GET", "fs").text == ""


def test_watch_service_rejects_unknown_backend():
    with pytest.raises(ValueError):
        WatchService(backend="carrier-pigeon")


def test_watch_service_registration_lifecycle(tmp_path):
    service = WatchService(backend="polling", poll_interval=0.1)
    try:
        sub = tmp_path / "sub"
        sub.mkdir()
        service.register(tmp_path)
        service.register(sub)
        service.register(sub)
        assert service.registered() == sorted([tmp_path, sub])

        with pytest.raises(FileNotFoundError):
            service.register(tmp_path / "missing")

        service.unregister(sub)
        service.unregister(sub)
        assert service.registered() == [tmp_path]
    finally:
        service.close()

    assert service.closed
    with pytest.raises(WatchServiceClosed):
        service.take()
    with pytest.raises(WatchServiceClosed):
        service.register(tmp_path)


def test_observer_dying_behind_the_loop_is_a_fault(tmp_path, host):
    service = WatchService(backend="polling", poll_interval=0.1, liveness_interval=0.1)
    tree = ResourceTreeSync(tmp_path, service, host, "fs")
    host.add_child("", "fs", ResourceNode(tree, ""))
    tree.build_initial_tree()
    path_watcher = PathWatcher(tmp_path, service, tree)
    path_watcher.start()
    try:
        assert path_watcher.is_alive

        observer = service._observer
        observer.stop()
        observer.join(5.0)

        assert wait_for(lambda: not path_watcher.is_alive)
        assert isinstance(path_watcher.fault, WatchLoopFault)
        assert "observer" in str(path_watcher.fault)
        assert service.closed

        (tmp_path / "late.txt").write_text("late")
        assert not wait_for(lambda: path_watcher.is_alive, timeout=0.5)
        assert tree.list_children("") == []
    finally:
        path_watcher.stop()
