import plistlib

import pytest

from ddisign import executil


@pytest.fixture(autouse=True)
def isolated_log(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(executil, "LOG_DIRS", [str(log_dir)])
    monkeypatch.setattr(executil, "LOG_PATH", None)
    monkeypatch.setattr(executil, "LOG_LEVEL", "TRACE")
    return log_dir / executil.LOG_NAME


@pytest.fixture
def manifest_dict():
    return {
        "ProductVersion": "17.0",
        "ProductBuildVersion": "21A5248v",
        "BuildIdentities": [
            {
                "ApBoardID": "0x08",
                "ApChipID": "0x8101",
                "ApSecurityDomain": "0x01",
                "Manifest": {
                    "LoadableTrustCache": {"Digest": b"\x01" * 48, "Trusted": True},
                    "PersonalizedDMG": {"Digest": b"\x02" * 48, "Trusted": True},
                    "Untrusted": {"Digest": b"\x03" * 48, "Trusted": False},
                },
            },
            {
                "ApBoardID": "0x0C",
                "ApChipID": "0x8103",
                "Manifest": {
                    "PersonalizedDMG": {"Digest": b"\x04" * 48, "Trusted": True},
                },
            },
        ],
    }


@pytest.fixture
def manifest_file(tmp_path, manifest_dict):
    path = tmp_path / "BuildManifest.plist"
    path.write_bytes(plistlib.dumps(manifest_dict))
    return path
