from __future__ import annotations

from .model import BuildManifest, DeviceIdentity, NetworkOptions, PersonalID, PersonalizationRequest


def build_request(
    identity: DeviceIdentity,
    manifest: BuildManifest,
    network: NetworkOptions,
) -> PersonalizationRequest:
    # identity was validated by the caller; nothing here can fail
    return PersonalizationRequest(
        personal_id=PersonalID(
            board_id=identity.board_id,
            chip_id=identity.chip_id,
            unique_chip_id=identity.ecid,
        ),
        manifest=manifest,
        nonce=identity.nonce,
        network=network,
    )
