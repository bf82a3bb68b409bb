"""DDI personalization flow.

validating -> [acquiring_mount] -> resolving_manifest -> building -> invoking
-> writing -> [releasing_mount] -> done

The mount stages only run for an Xcode source.  Releasing the mount is tied to
the ``manifest_location`` block, so it happens on every exit path once the
image was mounted by this run, and never for an image that was already
mounted.
"""

from __future__ import annotations

from typing import Callable, Optional

from . import manifest as manifest_mod
from .errors import DDISignError, SigningError
from .executil import trace
from .model import (
    DeviceIdentity,
    ManifestSource,
    NetworkOptions,
    PersonalizationRequest,
    SignOptions,
)
from .output import write_signature
from .request import build_request
from . import tss

Personalizer = Callable[[PersonalizationRequest], bytes]


def validate(opts: SignOptions):
    trace("sign.stage", stage="validating")
    source = ManifestSource.from_options(opts.xcode, opts.manifest)
    identity = DeviceIdentity.validated(opts.board_id, opts.chip_id, opts.ecid, opts.nonce)
    network = NetworkOptions(proxy=opts.proxy or None, insecure=bool(opts.insecure))
    return source, identity, network


def sign(opts: SignOptions, personalizer: Optional[Personalizer] = None) -> str:
    """Personalize the DDI described by ``opts`` and return the signature path."""

    personalizer = personalizer or tss.personalize
    source, identity, network = validate(opts)
    try:
        with manifest_mod.manifest_location(source) as manifest_path:
            trace("sign.stage", stage="resolving_manifest", path=manifest_path)
            build_manifest = manifest_mod.load_build_manifest(manifest_path)

            trace("sign.stage", stage="building")
            request = build_request(identity, build_manifest, network)

            trace("sign.stage", stage="invoking")
            try:
                signature = personalizer(request)
            except Exception as exc:  # noqa: BLE001 - every upstream failure is a signing failure
                raise SigningError(f"failed to personalize DDI: {exc}") from exc
            if not signature:
                raise SigningError("failed to personalize DDI: empty signature returned")

            trace("sign.stage", stage="writing")
            path = write_signature(signature, identity, opts.output)
    except DDISignError as exc:
        trace("sign.stage", stage="failed", failed_stage=exc.stage, error=exc.message, path=exc.path)
        raise
    trace("sign.stage", stage="done", path=path)
    return path
