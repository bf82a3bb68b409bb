"""Disk image mount helpers (hdiutil)."""
from subprocess import CalledProcessError, TimeoutExpired
import contextlib
import os
import plistlib
import tempfile

from .errors import MountError, UnmountError
from .executil import info, retry, run, trace, warn
from .model import MountHandle

UNMOUNT_ATTEMPTS = 3
UNMOUNT_DELAY = 2.0


def _default_mount_point(image: str) -> str:
    stem = os.path.splitext(os.path.basename(image))[0]
    return tempfile.mkdtemp(prefix=f"{stem}_")


def _discard(directory: str) -> None:
    try:
        os.rmdir(directory)
    except OSError as exc:
        trace("dmg.mount_point_cleanup_failed", mount_point=directory, error=str(exc))


def _realpath(path: str) -> str:
    try:
        return os.path.realpath(path)
    except OSError:
        return path


def _attached_images() -> list[dict]:
    r = run(["hdiutil", "info", "-plist"], check=False)
    if r.rc != 0 or not (r.out or "").strip():
        trace("dmg.info_unavailable", rc=r.rc, err=(r.err or "").strip())
        return []
    try:
        data = plistlib.loads(r.out.encode("utf-8"))
    except (plistlib.InvalidFileException, ValueError) as exc:
        trace("dmg.info_parse_error", error=str(exc))
        return []
    return list(data.get("images") or [])


def find_mount_point(image: str) -> str | None:
    """Return where ``image`` is currently mounted, or ``None``."""

    wanted = _realpath(image)
    for entry in _attached_images():
        if _realpath(entry.get("image-path", "")) != wanted:
            continue
        for entity in entry.get("system-entities") or []:
            mount_point = entity.get("mount-point")
            if mount_point:
                return mount_point
    return None


def mount_image(image: str, mount_point: str | None = None) -> MountHandle:
    existing = find_mount_point(image)
    if existing:
        return MountHandle(mount_point=existing, already_mounted=True)
    target = mount_point or _default_mount_point(image)
    try:
        run(["hdiutil", "attach", "-noverify", "-nobrowse", "-mountpoint", target, image], check=True, timeout=120.0)
    except CalledProcessError as exc:
        if not mount_point:
            _discard(target)
        msg = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
        raise MountError(f"failed to mount {os.path.basename(image)}: {msg}", path=image) from exc
    except (OSError, TimeoutExpired) as exc:
        if not mount_point:
            _discard(target)
        raise MountError(f"failed to mount {os.path.basename(image)}: {exc}", path=image) from exc
    trace("dmg.mounted", image=image, mount_point=target)
    return MountHandle(mount_point=target, already_mounted=False)


def unmount(mount_point: str, force: bool = False) -> None:
    cmd = ["hdiutil", "detach", mount_point]
    if force:
        cmd.append("-force")
    try:
        run(cmd, check=True)
    except CalledProcessError as exc:
        msg = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
        raise UnmountError(f"failed to unmount {mount_point}: {msg}", path=mount_point) from exc
    except (OSError, TimeoutExpired) as exc:
        raise UnmountError(f"failed to unmount {mount_point}: {exc}", path=mount_point) from exc


def release(handle: MountHandle, image: str) -> bool:
    """Unmount ``handle`` with bounded retry; returns ``False`` if it leaked.

    Exhausting the retries is logged and swallowed: the signature may already
    be on disk, so a busy mount must not turn the run into a failure.
    """

    if handle.already_mounted:
        return True
    trace("dmg.unmount", image=image, mount_point=handle.mount_point)
    try:
        retry(
            lambda: unmount(handle.mount_point, force=False),
            attempts=UNMOUNT_ATTEMPTS,
            delay=UNMOUNT_DELAY,
            retry_on=UnmountError,
        )
    except UnmountError as exc:
        warn(
            f"failed to unmount {image} at {handle.mount_point}: {exc}",
            event="dmg.unmount_failed",
            image=image,
            mount_point=handle.mount_point,
        )
        return False
    return True


@contextlib.contextmanager
def mounted_image(image: str, mount_point: str | None = None):
    """Mount ``image`` for the duration of the block.

    An image that was already mounted before entry is left mounted.
    """

    info(f"Mounting {image}", event="dmg.mount", image=image)
    handle = mount_image(image, mount_point)
    if handle.already_mounted:
        info(f"{image} already mounted", event="dmg.already_mounted", mount_point=handle.mount_point)
    try:
        yield handle
    finally:
        release(handle, image)
