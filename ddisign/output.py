"""Persist the personalized signature."""

from __future__ import annotations

import os

from .errors import OutputError
from .executil import info
from .model import DeviceIdentity

SIGNATURE_SUFFIX = "personalized.signature"
OUTPUT_DIR_MODE = 0o750
SIGNATURE_MODE = 0o644


def signature_filename(identity: DeviceIdentity) -> str:
    return f"{identity.board_id}.{identity.chip_id}.{identity.ecid}.{SIGNATURE_SUFFIX}"


def signature_path(identity: DeviceIdentity, output: str | None = None) -> str:
    fname = signature_filename(identity)
    if output:
        return os.path.join(output, fname)
    return fname


def write_signature(data: bytes, identity: DeviceIdentity, output: str | None = None) -> str:
    if output:
        try:
            os.makedirs(output, mode=OUTPUT_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise OutputError(f"failed to create output folder '{output}': {exc}", path=output) from exc
    path = signature_path(identity, output)
    info(f"Writing signature to {path}", event="output.write", path=path, size=len(data))
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SIGNATURE_MODE)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
    except OSError as exc:
        raise OutputError(f"failed to write signature to {path}: {exc}", path=path) from exc
    return path
