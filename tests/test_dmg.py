import os
import plistlib
import subprocess

import pytest

from ddisign import dmg, executil
from ddisign.errors import MountError, UnmountError
from ddisign.model import MountHandle

IMAGE = "/Applications/Xcode.app/Contents/Resources/CoreDeviceDDIs/iOS_DDI.dmg"


class DummyResult:
    def __init__(self, out: str = "", rc: int = 0, err: str = "") -> None:
        self.out = out
        self.rc = rc
        self.err = err


def _info_plist(images):
    return plistlib.dumps({"images": images}).decode("utf-8")


class FakeHdiutil:
    def __init__(self, mounted=None, detach_failures=0, attach_rc=0):
        self.mounted = mounted or []
        self.detach_failures = detach_failures
        self.attach_rc = attach_rc
        self.commands: list[list[str]] = []

    def __call__(self, cmd, check=True, **_kwargs):  # noqa: ARG002 - signature compatibility
        self.commands.append(list(cmd))
        verb = cmd[1]
        if verb == "info":
            return DummyResult(_info_plist(self.mounted))
        if verb == "attach":
            if self.attach_rc:
                raise subprocess.CalledProcessError(self.attach_rc, cmd, "", "hdiutil: attach failed - no such file")
            return DummyResult("")
        if verb == "detach":
            if self.detach_failures:
                self.detach_failures -= 1
                raise subprocess.CalledProcessError(16, cmd, "", "hdiutil: couldn't unmount - Resource busy")
            return DummyResult("")
        raise AssertionError(f"unexpected command {cmd}")

    def verbs(self, verb):
        return [c for c in self.commands if c[1] == verb]


@pytest.fixture
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr(executil.time, "sleep", calls.append)
    return calls


def test_find_mount_point_matches_image(monkeypatch):
    fake = FakeHdiutil(mounted=[
        {"image-path": "/other.dmg", "system-entities": [{"mount-point": "/Volumes/Other"}]},
        {"image-path": IMAGE, "system-entities": [{"dev-entry": "/dev/disk4"}, {"mount-point": "/Volumes/DDI"}]},
    ])
    monkeypatch.setattr(dmg, "run", fake)
    assert dmg.find_mount_point(IMAGE) == "/Volumes/DDI"
    assert dmg.find_mount_point("/not/mounted.dmg") is None


def test_find_mount_point_tolerates_bad_info(monkeypatch):
    monkeypatch.setattr(dmg, "run", lambda cmd, check=False, **_k: DummyResult("garbage"))
    assert dmg.find_mount_point(IMAGE) is None
    monkeypatch.setattr(dmg, "run", lambda cmd, check=False, **_k: DummyResult("", rc=1, err="no hdiutil"))
    assert dmg.find_mount_point(IMAGE) is None


def test_mount_image_attaches_when_not_mounted(monkeypatch):
    fake = FakeHdiutil()
    monkeypatch.setattr(dmg, "run", fake)
    handle = dmg.mount_image(IMAGE, "/tmp/iOS_DDI_mount")
    assert handle == MountHandle(mount_point="/tmp/iOS_DDI_mount", already_mounted=False)
    assert fake.verbs("attach") == [
        ["hdiutil", "attach", "-noverify", "-nobrowse", "-mountpoint", "/tmp/iOS_DDI_mount", IMAGE]
    ]


def test_mount_image_default_mount_point_is_private(monkeypatch, tmp_path):
    monkeypatch.setattr(dmg.tempfile, "tempdir", str(tmp_path))
    fake = FakeHdiutil()
    monkeypatch.setattr(dmg, "run", fake)
    first = dmg.mount_image(IMAGE)
    second = dmg.mount_image(IMAGE)
    assert first.mount_point != second.mount_point
    for handle in (first, second):
        assert os.path.dirname(handle.mount_point) == str(tmp_path)
        assert os.path.basename(handle.mount_point).startswith("iOS_DDI_")
        assert os.path.isdir(handle.mount_point)
    assert fake.verbs("attach")[0][5] == first.mount_point


def test_mount_image_failure_removes_private_mount_point(monkeypatch, tmp_path):
    monkeypatch.setattr(dmg.tempfile, "tempdir", str(tmp_path))
    monkeypatch.setattr(dmg, "run", FakeHdiutil(attach_rc=1))
    with pytest.raises(MountError):
        dmg.mount_image(IMAGE)
    assert list(tmp_path.iterdir()) == []


def test_mount_image_failure_keeps_caller_mount_point(monkeypatch, tmp_path):
    target = tmp_path / "mnt"
    target.mkdir()
    monkeypatch.setattr(dmg, "run", FakeHdiutil(attach_rc=1))
    with pytest.raises(MountError):
        dmg.mount_image(IMAGE, str(target))
    assert target.is_dir()


def test_mount_image_detects_existing_mount(monkeypatch):
    fake = FakeHdiutil(mounted=[{"image-path": IMAGE, "system-entities": [{"mount-point": "/Volumes/DDI"}]}])
    monkeypatch.setattr(dmg, "run", fake)
    handle = dmg.mount_image(IMAGE)
    assert handle == MountHandle(mount_point="/Volumes/DDI", already_mounted=True)
    assert not fake.verbs("attach")


def test_mount_image_failure_raises_mount_error(monkeypatch, tmp_path):
    monkeypatch.setattr(dmg.tempfile, "tempdir", str(tmp_path))
    monkeypatch.setattr(dmg, "run", FakeHdiutil(attach_rc=1))
    with pytest.raises(MountError, match="attach failed") as excinfo:
        dmg.mount_image(IMAGE)
    assert excinfo.value.path == IMAGE


def test_unmount_force_flag(monkeypatch):
    fake = FakeHdiutil()
    monkeypatch.setattr(dmg, "run", fake)
    dmg.unmount("/tmp/mnt")
    dmg.unmount("/tmp/mnt", force=True)
    assert fake.verbs("detach") == [
        ["hdiutil", "detach", "/tmp/mnt"],
        ["hdiutil", "detach", "/tmp/mnt", "-force"],
    ]


def test_unmount_failure_raises(monkeypatch):
    monkeypatch.setattr(dmg, "run", FakeHdiutil(detach_failures=1))
    with pytest.raises(UnmountError, match="Resource busy"):
        dmg.unmount("/tmp/mnt")


def test_release_retries_transient_busy(monkeypatch, sleeps):
    fake = FakeHdiutil(detach_failures=2)
    monkeypatch.setattr(dmg, "run", fake)
    assert dmg.release(MountHandle("/tmp/mnt", False), IMAGE) is True
    assert len(fake.verbs("detach")) == 3
    assert sleeps == [2.0, 2.0]


def test_release_gives_up_after_three_attempts(monkeypatch, sleeps, capsys):
    fake = FakeHdiutil(detach_failures=10)
    monkeypatch.setattr(dmg, "run", fake)
    assert dmg.release(MountHandle("/tmp/mnt", False), IMAGE) is False
    assert len(fake.verbs("detach")) == 3
    assert sleeps == [2.0, 2.0]
    assert "failed to unmount" in capsys.readouterr().err


def test_release_skips_preexisting_mount(monkeypatch, sleeps):
    fake = FakeHdiutil()
    monkeypatch.setattr(dmg, "run", fake)
    assert dmg.release(MountHandle("/Volumes/DDI", True), IMAGE) is True
    assert not fake.commands


def test_mounted_image_releases_on_error(monkeypatch, sleeps):
    fake = FakeHdiutil()
    monkeypatch.setattr(dmg, "run", fake)
    with pytest.raises(ValueError):
        with dmg.mounted_image(IMAGE, "/tmp/mnt") as handle:
            assert handle.already_mounted is False
            raise ValueError("downstream failure")
    assert fake.verbs("detach") == [["hdiutil", "detach", "/tmp/mnt"]]


def test_mounted_image_leaves_existing_mount(monkeypatch, sleeps):
    fake = FakeHdiutil(mounted=[{"image-path": IMAGE, "system-entities": [{"mount-point": "/Volumes/DDI"}]}])
    monkeypatch.setattr(dmg, "run", fake)
    with dmg.mounted_image(IMAGE) as handle:
        assert handle.mount_point == "/Volumes/DDI"
    assert not fake.verbs("detach")
