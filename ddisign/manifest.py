"""Locate, read and parse the BuildManifest.plist used for personalization."""

from __future__ import annotations

import contextlib
import os
import plistlib
from typing import Iterator, Union
from xml.parsers.expat import ExpatError

from . import dmg
from .errors import ManifestParseError, ManifestReadError, NotFoundError
from .model import BuildManifest, ManifestFile, XcodePath
from .paths import DDI_IMAGE_RELPATH, MANIFEST_RELPATH


def ddi_image_path(xcode: str) -> str:
    return os.path.join(xcode, DDI_IMAGE_RELPATH)


@contextlib.contextmanager
def manifest_location(source: Union[XcodePath, ManifestFile]) -> Iterator[str]:
    """Yield the BuildManifest path for ``source``.

    For an Xcode install the DDI image is mounted first and released when the
    block exits, whether or not the block raised.
    """

    if isinstance(source, ManifestFile):
        yield source.path
        return

    image = ddi_image_path(source.path)
    if not os.path.isfile(image):
        raise NotFoundError(
            f"failed to find iOS_DDI.dmg in '{source.path}' "
            "(install a newer Xcode.app or Xcode-beta.app)",
            path=image,
        )
    with dmg.mounted_image(image) as handle:
        yield os.path.join(handle.mount_point, MANIFEST_RELPATH)


def read_manifest(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except OSError as exc:
        raise ManifestReadError(f"failed to read BuildManifest.plist at {path}: {exc}", path=path) from exc


def parse_build_manifest(data: bytes) -> BuildManifest:
    try:
        raw = plistlib.loads(data)
    except (plistlib.InvalidFileException, ValueError, ExpatError) as exc:
        raise ManifestParseError(f"failed to parse BuildManifest.plist: {exc}") from exc
    if not isinstance(raw, dict) or not isinstance(raw.get("BuildIdentities"), list):
        raise ManifestParseError("failed to parse BuildManifest.plist: missing BuildIdentities")
    return BuildManifest(raw)


def load_build_manifest(path: str) -> BuildManifest:
    data = read_manifest(path)
    try:
        return parse_build_manifest(data)
    except ManifestParseError as exc:
        exc.path = path
        raise
