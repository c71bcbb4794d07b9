"""Append-only JSONL sinks for AI request telemetry."""

from __future__ import annotations

import datetime as _dt
import json
import os
from typing import Any, Dict, Optional

_REQUEST_LOG_PATH = "meta/output/handy_dandy/requests.jsonl"


def log_jsonl(path: str, record: Dict[str, Any]) -> None:
    """Write *record* as one sorted-key line at the end of *path*.

    Missing parent directories are created. ``OSError`` from the filesystem
    propagates to the caller.
    """

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, sort_keys=True))
        handle.write("\n")


def log_ai_request(record: Dict[str, Any], *, path: Optional[str] = None) -> None:
    """Stamp a provider call *record* with a UTC time and store it.

    Records go to ``meta/output/handy_dandy/requests.jsonl`` unless *path*
    names another file. A ``timestamp`` already on the record is kept.
    """

    payload = dict(record)
    payload.setdefault("timestamp", _dt.datetime.now(tz=_dt.timezone.utc).isoformat())
    log_jsonl(path or _REQUEST_LOG_PATH, payload)


__all__ = ["log_ai_request", "log_jsonl"]
