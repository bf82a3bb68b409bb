from __future__ import annotations

"""Subprocess wrapper, JSONL trace log and bounded retry."""

import datetime as _dt
import json
import os
import subprocess
import sys
import time
from typing import Callable, Sequence, TypeVar

from .paths import ddisign_logs_dir

T = TypeVar("T")

LOG_DIRS: list[str] | None = None
LOG_PATH: str | None = None
LOG_NAME = "ddisign.jsonl"


def _log_dirs() -> list[str]:
    if LOG_DIRS:
        return list(LOG_DIRS)
    return [
        ddisign_logs_dir(),
        "/tmp/ddisign-logs",
    ]


def _ensure_logger() -> str | None:
    global LOG_PATH
    if LOG_PATH:
        return LOG_PATH
    for d in _log_dirs():
        d_expanded = os.path.expanduser(d)
        try:
            os.makedirs(d_expanded, exist_ok=True)
            LOG_PATH = os.path.join(d_expanded, LOG_NAME)
            return LOG_PATH
        except OSError:
            continue
    LOG_PATH = None
    return None


def resolve_log_path() -> str | None:
    """Return the active log path, creating directories when possible."""

    return _ensure_logger()


class Result:
    def __init__(self, rc: int, out: str, err: str, duration: float):
        self.rc, self.out, self.err, self.duration = rc, out, err, duration


LEVELS = {"TRACE": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "NONE": 100}
LOG_LEVEL = os.environ.get("DDISIGN_LOG_LEVEL", "INFO").upper()


def set_level(level: str) -> None:
    global LOG_LEVEL
    LOG_LEVEL = level.upper()


def _enabled(level: str) -> bool:
    return LEVELS.get(level.upper(), 100) >= LEVELS.get(LOG_LEVEL, 100)


def _write_jsonl(obj: dict):
    path = _ensure_logger()
    try:
        if path:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(obj, default=str) + "\n")
    except OSError:
        pass


def log(level: str, event: str, **fields):
    if not _enabled(level):
        return
    ts = _dt.datetime.now(_dt.timezone.utc).isoformat()
    rec = {"ts": ts, "level": level.upper(), "event": event}
    rec.update(fields)
    _write_jsonl(rec)


def trace(event: str, **fields):
    log("TRACE", event, **fields)


def _say(level: str, message: str, event: str, fields: dict, always: bool = False):
    log(level, event, message=message, **fields)
    if always or _enabled(level):
        print(f"[{level}] {message}", file=sys.stderr, flush=True)


def info(message: str, event: str = "info", **fields):
    _say("INFO", message, event, fields)


def warn(message: str, event: str = "warn", **fields):
    _say("WARN", message, event, fields)


def error(message: str, event: str = "error", **fields):
    # always printed; LOG_LEVEL only gates the JSONL record
    _say("ERROR", message, event, fields, always=True)


def run(
    cmd: Sequence[str],
    check: bool = True,
    timeout: float = 60.0,
    env: dict | None = None,
) -> Result:
    trace("exec.start", cmd=list(cmd))
    started = time.time()
    proc = subprocess.run(list(cmd), capture_output=True, text=True, timeout=timeout, env=env)
    dur = time.time() - started
    trace("exec.done", cmd=list(cmd), rc=proc.returncode, dur=dur, out=proc.stdout, err=proc.stderr)
    if check and proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, list(cmd), proc.stdout, proc.stderr)
    return Result(proc.returncode, proc.stdout, proc.stderr, dur)


def retry(
    fn: Callable[[], T],
    attempts: int = 3,
    delay: float = 2.0,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call ``fn`` up to ``attempts`` times, sleeping ``delay`` seconds between tries.

    Only exceptions matching ``retry_on`` are retried; the last one is
    re-raised once the attempts are exhausted.
    """

    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            trace("retry.failed", attempt=attempt, attempts=attempts, error=str(exc))
            if attempt == attempts:
                raise
            (sleep or time.sleep)(delay)
    raise AssertionError("unreachable")


def append_jsonl(path: str, obj: dict):
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
    except OSError:
        pass
