"""Error taxonomy for DDI personalization."""

from __future__ import annotations


class DDISignError(RuntimeError):
    """Base class; ``result`` names the CLI result kind, ``stage`` the failing step."""

    result = "FAIL_GENERIC"
    stage = "unknown"

    def __init__(self, message: str, *, path: str | None = None, state: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.state = state or {}


class ConfigurationError(DDISignError):
    """Mutually exclusive or missing inputs; raised before any side effect."""

    result = "FAIL_CONFIG"
    stage = "validating"


class NotFoundError(DDISignError):
    result = "FAIL_DDI_NOT_FOUND"
    stage = "resolving_manifest"


class MountError(DDISignError):
    result = "FAIL_MOUNT"
    stage = "acquiring_mount"


class UnmountError(DDISignError):
    """Never reaches the caller; downgraded to a warning after retries."""

    result = "WARN_UNMOUNT"
    stage = "releasing_mount"


class ManifestReadError(DDISignError):
    result = "FAIL_MANIFEST_READ"
    stage = "resolving_manifest"


class ManifestParseError(DDISignError):
    result = "FAIL_MANIFEST_PARSE"
    stage = "resolving_manifest"


class SigningError(DDISignError):
    result = "FAIL_PERSONALIZE"
    stage = "invoking"


class OutputError(DDISignError):
    result = "FAIL_OUTPUT"
    stage = "writing"
