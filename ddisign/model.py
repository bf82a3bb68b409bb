from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from .errors import ConfigurationError

UINT64_MAX = 0xFFFFFFFFFFFFFFFF


@dataclass
class SignOptions:
    xcode: Optional[str] = None
    manifest: Optional[str] = None
    board_id: int = 0
    chip_id: int = 0
    ecid: int = 0
    nonce: str = ""
    proxy: Optional[str] = None
    insecure: bool = False
    output: Optional[str] = None


@dataclass(frozen=True)
class DeviceIdentity:
    board_id: int
    chip_id: int
    ecid: int
    nonce: str

    @classmethod
    def validated(cls, board_id: int, chip_id: int, ecid: int, nonce: str) -> "DeviceIdentity":
        ids = (board_id, chip_id, ecid)
        if any(not isinstance(v, int) or not 0 < v <= UINT64_MAX for v in ids) or not nonce:
            raise ConfigurationError(
                "must specify --board-id, --chip-id, --ecid AND --nonce",
                state={"board_id": board_id, "chip_id": chip_id, "ecid": ecid, "nonce": bool(nonce)},
            )
        return cls(board_id=board_id, chip_id=chip_id, ecid=ecid, nonce=nonce)


@dataclass(frozen=True)
class XcodePath:
    path: str


@dataclass(frozen=True)
class ManifestFile:
    path: str


class ManifestSource:
    """Builds exactly one of :class:`XcodePath` or :class:`ManifestFile`."""

    @staticmethod
    def from_options(xcode: Optional[str], manifest: Optional[str]) -> Union[XcodePath, ManifestFile]:
        if xcode and manifest:
            raise ConfigurationError("cannot specify both --xcode and --manifest")
        if not xcode and not manifest:
            raise ConfigurationError("must specify either --xcode or --manifest")
        if xcode:
            return XcodePath(xcode)
        return ManifestFile(manifest)


@dataclass(frozen=True)
class NetworkOptions:
    proxy: Optional[str] = None
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.proxy:
            parsed = urlparse(self.proxy)
            if not parsed.scheme or not parsed.netloc:
                raise ConfigurationError(f"invalid --proxy URL {self.proxy!r}")

    def proxies(self) -> Optional[Dict[str, str]]:
        if not self.proxy:
            return None
        return {"http": self.proxy, "https": self.proxy}


@dataclass(frozen=True)
class BuildManifest:
    raw: Dict[str, Any] = field(repr=False)

    @property
    def build_identities(self) -> List[Dict[str, Any]]:
        return list(self.raw.get("BuildIdentities") or [])

    @property
    def product_version(self) -> Optional[str]:
        return self.raw.get("ProductVersion")

    @property
    def product_build_version(self) -> Optional[str]:
        return self.raw.get("ProductBuildVersion")


@dataclass(frozen=True)
class PersonalID:
    board_id: int
    chip_id: int
    unique_chip_id: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "BoardId": self.board_id,
            "ChipID": self.chip_id,
            "UniqueChipID": self.unique_chip_id,
        }


@dataclass(frozen=True)
class PersonalizationRequest:
    personal_id: PersonalID
    manifest: BuildManifest
    nonce: str
    network: NetworkOptions


@dataclass(frozen=True)
class MountHandle:
    mount_point: str
    already_mounted: bool
