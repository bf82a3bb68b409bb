from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_BASE = "~/.ddisign"
DEFAULT_XCODE = "/Applications/Xcode.app"
DEFAULT_TSS_URL = "https://gs.apple.com/TSS/controller?action=2"

DDI_IMAGE_RELPATH = "Contents/Resources/CoreDeviceDDIs/iOS_DDI.dmg"
MANIFEST_RELPATH = "Restore/BuildManifest.plist"


def _expand(path: str) -> str:
    candidate = Path(path).expanduser()
    try:
        return str(candidate.resolve())
    except FileNotFoundError:
        return str(candidate)


def ddisign_base_path() -> str:
    """Return the base directory for ddisign state.

    The location can be overridden via the ``DDISIGN_BASE_PATH`` environment
    variable.  When unset we fall back to ``~/.ddisign``.
    """

    override = os.environ.get("DDISIGN_BASE_PATH")
    if override:
        return _expand(override)
    return _expand(_DEFAULT_BASE)


def ddisign_logs_dir() -> str:
    return str(Path(ddisign_base_path()) / "logs")


def default_xcode_path() -> str:
    return os.environ.get("DDISIGN_XCODE") or DEFAULT_XCODE


def tss_url() -> str:
    return os.environ.get("DDISIGN_TSS_URL") or DEFAULT_TSS_URL
