from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from taskboard.config import get_settings
from taskboard.utils.log import _redact_str

_lock = Lock()

# Never write raw credentials or free text into the audit trail.
_AUDIT_SECRET_KEYS = {"password", "token", "access_token", "accesstoken", "cookie"}
_AUDIT_TEXT_KEYS = {"title", "description"}


def _audit_dir() -> Path:
    return Path(get_settings().log_dir)


def _audit_path(ts: datetime) -> Path:
    return _audit_dir() / f"audit-{ts:%Y%m%d}.log"


def _audit_path_latest() -> Path:
    return _audit_dir() / "audit.jsonl"


def _scrub_meta_safe(meta: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for kk, vv in meta.items():
        kks = str(kk)
        kl = kks.strip().lower()
        if kl in _AUDIT_SECRET_KEYS:
            out[kks] = {"redacted": True}
            continue
        if kl in _AUDIT_TEXT_KEYS:
            out[kks] = {"redacted": True, "len": len(vv) if isinstance(vv, str) else None}
            continue
        if isinstance(vv, str):
            if len(vv) > 200:
                out[kks] = {"redacted": True, "len": len(vv)}
            else:
                out[kks] = _redact_str(vv)
            continue
        if isinstance(vv, dict):
            out[kks] = {"keys": len(vv)}
            continue
        if isinstance(vv, list):
            out[kks] = {"count": len(vv)}
            continue
        out[kks] = vv
    return out


def _write_record(rec: dict[str, Any]) -> None:
    ts = datetime.now(tz=timezone.utc)
    daily = _audit_path(ts)
    latest = _audit_path_latest()
    daily.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(rec, ensure_ascii=False, separators=(",", ":"))
    with _lock:
        with daily.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
        with latest.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


def emit(
    event_type: str,
    *,
    request_id: str | None = None,
    user_id: str | None = None,
    meta: dict[str, Any] | None = None,
    outcome: str | None = None,
) -> None:
    """
    Append-only audit log (newline-delimited JSON), daily rotated by date.
    """
    ts = datetime.now(tz=timezone.utc)
    rec: dict[str, Any] = {
        "ts": ts.isoformat(),
        "event": str(event_type),
        "outcome": str(outcome or "unknown"),
    }
    if request_id:
        rec["request_id"] = request_id
    if user_id:
        rec["user_id"] = user_id
    if meta:
        rec["meta"] = _scrub_meta_safe(meta)
    _write_record(rec)


def read_recent(limit: int = 50) -> list[dict[str, Any]]:
    """Return the newest `limit` records from the rolling audit file (oldest first)."""
    path = _audit_path_latest()
    if not path.exists():
        return []
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(ln) for ln in lines[-int(limit) :] if ln.strip()]
