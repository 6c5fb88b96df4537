from __future__ import annotations

import logging
import re
import sys
from contextlib import suppress
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from taskboard.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def set_user_id(uid: str | None) -> None:
    user_id_var.set(uid)


def _log_path() -> Path:
    s = get_settings()
    return Path(s.log_dir) / "app.log"


_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9_\-\.=]+)")
_COOKIE_RE = re.compile(r"(?i)\b(refreshToken|refresh_token)=([^\s;,]+)")
_KV_RE = re.compile(
    r"(?i)\b(jwt_secret|rotation_token_secret|refresh_token_secret|password|secret|token|access_token)\b\s*=\s*([^\s,;]+)"
)


def _secret_literals() -> list[str]:
    """
    Return configured secret values that must never appear in logs.
    """
    vals: list[str] = []
    with suppress(Exception):
        sec = get_settings().secret
        for name in ("jwt_secret", "rotation_token_secret"):
            v = getattr(sec, name, None)
            if v is not None:
                raw = str(v.get_secret_value() or "")
                if raw:
                    vals.append(raw)

    # De-dupe and ignore tiny values to avoid over-redaction.
    out: list[str] = []
    for v in vals:
        if len(v) >= 8 and v not in out:
            out.append(v)
    return out


def _redact_str(s: str) -> str:
    for lit in _secret_literals():
        if lit in s:
            s = s.replace(lit, "***REDACTED***")
    s = _JWT_RE.sub("***REDACTED***", s)
    s = _BEARER_RE.sub("Bearer ***REDACTED***", s)
    s = _COOKIE_RE.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)
    s = _KV_RE.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)
    return s


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        if isinstance(v, str):
            event_dict[k] = _redact_str(v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = request_id_var.get()
    uid = user_id_var.get()
    if rid:
        event_dict.setdefault("request_id", rid)
    if uid:
        event_dict.setdefault("user_id", uid)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "msg" not in event_dict and "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    s = get_settings()
    level = str(s.log_level).upper()
    log_path = _log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicates if re-imported
    if getattr(root, "_taskboard_structlog_configured", False):
        return structlog.get_logger("taskboard")

    foreign_pre_chain = [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=foreign_pre_chain,
    )

    file_handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=int(s.log_max_bytes),
        backupCount=int(s.log_backup_count),
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(stream_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.stdlib.add_log_level,
            add_contextvars,
            redact_event,
            structlog.processors.format_exc_info,
            rename_event_to_msg,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root._taskboard_structlog_configured = True
    return structlog.get_logger("taskboard")


logger = _configure_structlog()


def set_log_level(level: str) -> None:
    """
    Runtime log level override (CLI convenience).
    Does not change handlers/formatters; only raises/lowers filtering level.
    """
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
