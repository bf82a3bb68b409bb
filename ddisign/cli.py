"""CLI entrypoint for DDI personalization."""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Any, Dict, Optional

from .errors import DDISignError
from .executil import append_jsonl, error, resolve_log_path, set_level, trace
from .model import UINT64_MAX, SignOptions
from .paths import default_xcode_path
from .personalize import sign

RESULT_CODES: Dict[str, int] = {
    "SIGN_OK": 0,
    "FAIL_CONFIG": 2,
    "FAIL_DDI_NOT_FOUND": 3,
    "FAIL_MOUNT": 4,
    "FAIL_MANIFEST_READ": 5,
    "FAIL_MANIFEST_PARSE": 5,
    "FAIL_PERSONALIZE": 6,
    "FAIL_OUTPUT": 7,
    "FAIL_GENERIC": 9,
    "FAIL_UNHANDLED": 12,
}

CLI_START_MONO = time.perf_counter()
JSON_OUTPUT_ENABLED = True


def _emit_result(kind: str, extra: Optional[Dict[str, Any]] = None) -> int:
    payload: Dict[str, Any] = {"result": kind, "ts": int(time.time())}
    if extra:
        payload.update(extra)
    payload["timing_total_ms"] = int(max(0.0, (time.perf_counter() - CLI_START_MONO) * 1000))
    log_path = resolve_log_path()
    if log_path:
        payload.setdefault("log_path", log_path)
        append_jsonl(log_path, payload)
    if JSON_OUTPUT_ENABLED:
        print(json.dumps(payload, sort_keys=True, separators=(",", ":")))
    return RESULT_CODES.get(kind, 1)


def _uint(text: str) -> int:
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid unsigned integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"value must be unsigned: {text!r}")
    if value > UINT64_MAX:
        raise argparse.ArgumentTypeError(f"value does not fit in 64 bits: {text!r}")
    return value


_TRUE = {"1", "true", "t", "yes", "y", "on"}
_FALSE = {"0", "false", "f", "no", "n", "off"}


def _bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean: {text!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ddisign", add_help=True)
    parser.add_argument("-V", "--verbose", action="store_true")
    parser.add_argument("--json", dest="json", action="store_true", default=True)
    parser.add_argument("--no-json", dest="json", action="store_false")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sign", help="Personalize DDI")
    p.add_argument("-x", "--xcode", default=None, help="Path to Xcode.app")
    p.add_argument("-m", "--manifest", default=None, help="BuildManifest.plist to use")
    p.add_argument("-b", "--board-id", type=_uint, default=0, help="Device ApBoardID")
    p.add_argument("-c", "--chip-id", type=_uint, default=0, help="Device ApChipID")
    p.add_argument("-e", "--ecid", type=_uint, default=0, help="Device ApECID")
    p.add_argument("-n", "--nonce", default="", help="Device ApNonce")
    p.add_argument("--proxy", default=None, help="HTTP/HTTPS proxy")
    p.add_argument(
        "--insecure",
        nargs="?",
        type=_bool,
        const=True,
        default=False,
        metavar="BOOL",
        help="do not verify ssl certs (bare flag means true)",
    )
    p.add_argument("-o", "--output", default=None, help="Folder to write signature to")
    return parser


def options_from_args(args: argparse.Namespace) -> SignOptions:
    xcode = args.xcode
    # the conventional Xcode location only applies when no manifest was given
    if xcode is None and not args.manifest:
        xcode = default_xcode_path()
    return SignOptions(
        xcode=xcode,
        manifest=args.manifest,
        board_id=args.board_id,
        chip_id=args.chip_id,
        ecid=args.ecid,
        nonce=args.nonce,
        proxy=args.proxy,
        insecure=args.insecure,
        output=args.output,
    )


def _main_impl(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    global JSON_OUTPUT_ENABLED
    JSON_OUTPUT_ENABLED = bool(args.json)
    if args.verbose:
        set_level("TRACE")

    opts = options_from_args(args)
    trace(
        "cli.args",
        command=args.command,
        xcode=opts.xcode,
        manifest=opts.manifest,
        board_id=opts.board_id,
        chip_id=opts.chip_id,
        ecid=opts.ecid,
        proxy=opts.proxy,
        insecure=opts.insecure,
        output=opts.output,
    )

    try:
        path = sign(opts)
    except DDISignError as exc:
        error(exc.message, event="cli.failed", stage=exc.stage)
        return _emit_result(exc.result, extra={"why": exc.message, "stage": exc.stage, "path": exc.path})
    return _emit_result("SIGN_OK", extra={"signature": path})


def main(argv: Optional[list[str]] = None) -> int:
    try:
        return _main_impl(argv)
    except SystemExit:
        raise
    except Exception as exc:  # noqa: BLE001
        error(f"unexpected failure: {exc}", event="cli.unhandled")
        return _emit_result("FAIL_UNHANDLED", extra={"why": str(exc)})


if __name__ == "__main__":
    sys.exit(main())
