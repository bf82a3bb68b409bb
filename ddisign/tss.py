"""Apple TSS personalization exchange.

The request is an XML plist describing the device (board, chip, ECID, nonce)
plus the digests of every trusted component of the matching build identity.
TSS answers with ``STATUS=<n>&MESSAGE=<text>&REQUEST_STRING=<plist>``; the
plist carries the ``ApImg4Ticket`` we hand back as the signature.
"""

from __future__ import annotations

import plistlib
import uuid
from typing import Any, Dict, Optional
from xml.parsers.expat import ExpatError

import requests
from requests.packages.urllib3.exceptions import InsecureRequestWarning

from .errors import SigningError
from .executil import trace
from .model import PersonalizationRequest
from .paths import tss_url

CLIENT_VERSION = "libauthinstall-1033.0.2"
TIMEOUT = 60.0
HEADERS = {
    "Cache-Control": "no-cache",
    "Content-Type": 'text/xml; charset="utf-8"',
    "User-Agent": "InetURL/1.0",
    "Expect": "",
}


def _hex_int(value: Any) -> Optional[int]:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16)
        except ValueError:
            return None
    return None


def find_build_identity(request: PersonalizationRequest) -> Dict[str, Any]:
    pid = request.personal_id
    for identity in request.manifest.build_identities:
        if _hex_int(identity.get("ApBoardID")) == pid.board_id and _hex_int(identity.get("ApChipID")) == pid.chip_id:
            return identity
    raise SigningError(
        f"no build identity in BuildManifest for board 0x{pid.board_id:02X} chip 0x{pid.chip_id:04X}",
        state={"identities": len(request.manifest.build_identities)},
    )


def build_tss_request(request: PersonalizationRequest) -> Dict[str, Any]:
    identity = find_build_identity(request)
    try:
        nonce = bytes.fromhex(request.nonce)
    except ValueError as exc:
        raise SigningError(f"nonce is not a hex string: {request.nonce!r}") from exc

    security_domain = _hex_int(identity.get("ApSecurityDomain"))
    ids = request.personal_id.as_dict()
    params: Dict[str, Any] = {
        "@HostPlatformInfo": "mac",
        "@VersionInfo": CLIENT_VERSION,
        "@UUID": str(uuid.uuid4()).upper(),
        "@ApImg4Ticket": True,
        "ApBoardID": ids["BoardId"],
        "ApChipID": ids["ChipID"],
        "ApECID": ids["UniqueChipID"],
        "ApNonce": nonce,
        "ApProductionMode": True,
        "ApSecurityMode": True,
        "ApSecurityDomain": 1 if security_domain is None else security_domain,
    }
    for name, entry in (identity.get("Manifest") or {}).items():
        if not isinstance(entry, dict) or not entry.get("Trusted") or "Digest" not in entry:
            continue
        params[name] = {
            "Digest": entry["Digest"],
            "Trusted": True,
            "EPRO": True,
            "ESEC": True,
        }
    return params


def parse_response(text: str) -> bytes:
    head, sep, body = text.partition("REQUEST_STRING=")
    fields = dict(part.split("=", 1) for part in head.split("&") if "=" in part)
    status = fields.get("STATUS")
    if status != "0":
        raise SigningError(
            f"TSS rejected request: STATUS={status} MESSAGE={fields.get('MESSAGE', '')}".strip()
        )
    if not sep or not body.strip():
        raise SigningError("TSS response carried no REQUEST_STRING")
    try:
        payload = plistlib.loads(body.encode("utf-8"))
    except (plistlib.InvalidFileException, ValueError, ExpatError) as exc:
        raise SigningError(f"failed to parse TSS response: {exc}") from exc
    ticket = payload.get("ApImg4Ticket") if isinstance(payload, dict) else None
    if not ticket:
        raise SigningError("TSS response is missing ApImg4Ticket")
    return bytes(ticket)


def personalize(request: PersonalizationRequest) -> bytes:
    body = plistlib.dumps(build_tss_request(request), fmt=plistlib.FMT_XML)
    network = request.network
    if network.insecure:
        requests.packages.urllib3.disable_warnings(InsecureRequestWarning)
    url = tss_url()
    trace("tss.request", url=url, proxy=network.proxy, insecure=network.insecure, size=len(body))
    try:
        resp = requests.post(
            url,
            data=body,
            headers=HEADERS,
            proxies=network.proxies(),
            verify=not network.insecure,
            timeout=TIMEOUT,
        )
        resp.raise_for_status()
    except requests.exceptions.RequestException as exc:
        raise SigningError(f"TSS request to {url} failed: {exc}") from exc
    trace("tss.response", status=resp.status_code, size=len(resp.content))
    return parse_response(resp.text)
