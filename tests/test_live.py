"""End-to-end checks against a real watchdog observer (polling backend)."""
import shutil

import pytest

from conftest import wait_for
from dirmirror import DirectoryMirror
from dirmirror.host import LocalHost, ResponseCode, SignalType


@pytest.fixture
def live(tmp_path):
    root = tmp_path / "root"
    (root / "a").mkdir(parents=True)
    (root / "a" / "b.txt").write_text("hi")
    host = LocalHost()
    mirror = DirectoryMirror("fs", root, host, backend="polling", poll_interval=0.1)
    yield root, host, mirror
    mirror.close()


def test_appended_file_signals_and_serves_new_content(live):
    root, host, mirror = live
    assert host.request("GET", "fs/a/b.txt").payload == b"hi"

    with open(root / "a" / "b.txt", "a") as handle:
        handle.write(" there")

    assert wait_for(lambda: (SignalType.CHANGED, "fs/a/b.txt") in host.signals)
    assert host.request("GET", "fs/a/b.txt").payload == b"hi there"


def test_new_directory_becomes_visible(live):
    root, host, mirror = live

    (root / "c").mkdir()
    (root / "c" / "d.txt").write_text("dee")

    assert wait_for(lambda: host.request("GET", "fs/c/d.txt").code is ResponseCode.CONTENT)
    assert "c" in host.request("GET", "fs").text.splitlines()
    assert host.request("GET", "fs/c").text == "d.txt"
    assert host.request("GET", "fs/c/d.txt").payload == b"dee"


def test_removed_directory_is_pruned(live):
    root, host, mirror = live

    shutil.rmtree(root / "a")

    assert wait_for(lambda: mirror.find("a") is None)
    assert wait_for(lambda: mirror.tree.directories() == [""])
    assert host.request("GET", "fs/a/b.txt").code is ResponseCode.NOT_FOUND
    assert mirror.is_watching
