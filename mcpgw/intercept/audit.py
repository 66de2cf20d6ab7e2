"""Audit log entries and the logger that records every message with its verdict."""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from mcpgw import metrics
from mcpgw.intercept.context import RequestContext
from mcpgw.intercept.interceptor import Action, Direction, Result
from mcpgw.jsonrpc.message import Kind, Message

_log = logging.getLogger(__name__)

_ZERO_TIME = "0001-01-01T00:00:00Z"
_TIME_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)
_STRING_FIELDS = (
    "direction",
    "method",
    "id",
    "kind",
    "action",
    "reason",
    "request_id",
    "subject",
    "upstream",
    "tool_name",
    "threat_type",
)


def _format_time(ts: datetime | None) -> str:
    if ts is None:
        return _ZERO_TIME
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    text = ts.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_time(text: str) -> datetime | None:
    match = _TIME_RE.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp {text!r}")
    base, fraction, zone = match.groups()
    fraction = (fraction or "")[:7]
    if zone == "Z":
        zone = "+00:00"
    ts = datetime.fromisoformat(base + fraction + zone)
    if ts.year == 1 and ts.month == 1 and ts.day == 1 and ts.utcoffset() == timezone.utc.utcoffset(None):
        if ts.hour == 0 and ts.minute == 0 and ts.second == 0 and ts.microsecond == 0:
            return None
    return ts


@dataclass
class AuditEntry:
    """One line of the audit log."""

    timestamp: datetime | None = None
    direction: str = ""
    method: str = ""
    id: str = ""
    kind: str = ""
    size: int = 0
    action: str = ""
    reason: str = ""
    request_id: str = ""
    subject: str = ""
    upstream: str = ""
    tool_name: str = ""
    tool_args: dict[str, Any] | None = None
    threat_type: str = ""
    threat_score: float = 0.0
    threat_details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "timestamp": _format_time(self.timestamp),
            "direction": self.direction,
        }
        if self.method:
            out["method"] = self.method
        if self.id:
            out["id"] = self.id
        out["kind"] = self.kind
        out["size"] = self.size
        out["action"] = self.action
        for key in ("reason", "request_id", "subject", "upstream", "tool_name"):
            value = getattr(self, key)
            if value:
                out[key] = value
        if self.tool_args:
            out["tool_args"] = self.tool_args
        if self.threat_type:
            out["threat_type"] = self.threat_type
        if self.threat_score:
            out["threat_score"] = self.threat_score
        if self.threat_details:
            out["threat_details"] = self.threat_details
        return out

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "AuditEntry":
        """Build an entry from decoded JSON; raises ValueError on malformed fields."""
        if not isinstance(data, Mapping):
            raise ValueError("audit entry must be an object")
        kwargs: dict[str, Any] = {}
        for key in _STRING_FIELDS:
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string")
            kwargs[key] = value
        ts = data.get("timestamp")
        if ts is not None:
            if not isinstance(ts, str):
                raise ValueError("timestamp must be a string")
            kwargs["timestamp"] = _parse_time(ts)
        size = data.get("size")
        if size is not None:
            if not isinstance(size, int) or isinstance(size, bool):
                raise ValueError("size must be an integer")
            kwargs["size"] = size
        score = data.get("threat_score")
        if score is not None:
            if not isinstance(score, (int, float)) or isinstance(score, bool):
                raise ValueError("threat_score must be a number")
            kwargs["threat_score"] = float(score)
        for key in ("tool_args", "threat_details"):
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ValueError(f"{key} must be an object")
            kwargs[key] = value
        return AuditEntry(**kwargs)


def kind_string(kind: Kind) -> str:
    """Name of a message kind as written to the audit log."""
    if isinstance(kind, Kind):
        return kind.value
    return "unknown"


def _action_string(action: Action) -> str:
    if action is Action.BLOCK:
        return "block"
    if action is Action.REDACT:
        return "redact"
    return "pass"


def _tool_call(params: str | None) -> tuple[str, dict[str, Any] | None]:
    if not params:
        return "", None
    try:
        obj = json.loads(params)
    except ValueError:
        return "", None
    if not isinstance(obj, dict):
        return "", None
    name = obj.get("name")
    args = obj.get("arguments")
    if name is not None and not isinstance(name, str):
        return "", None
    if args is not None and not isinstance(args, dict):
        return "", None
    return name or "", args


AlertSink = Callable[[dict[str, str]], None]


class AuditLogger:
    """Appends one JSON line per message to an audit log file; write failures never raise."""

    def __init__(self, path: str | Path, alerter: AlertSink | None = None) -> None:
        self.path = Path(path)
        self._alerter = alerter
        self._lock = threading.Lock()
        self._file = open(self.path, "a", encoding="utf-8")

    def log(
        self,
        ctx: RequestContext,
        direction: Direction,
        msg: Message | None,
        raw: bytes | None,
        result: Result,
    ) -> AuditEntry:
        """Record a message and its verdict; returns the entry that was written."""
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc),
            direction=str(direction),
            size=len(raw or b""),
            action=_action_string(result.action),
            reason=result.reason,
            request_id=ctx.request_id,
            upstream=ctx.upstream,
        )
        if ctx.identity is not None:
            entry.subject = ctx.identity.subject

        if msg is not None:
            entry.method = msg.method
            entry.id = (msg.id or "").strip('"')
            entry.kind = kind_string(msg.kind())
            if msg.method == "tools/call":
                name, args = _tool_call(msg.params)
                if name:
                    entry.tool_name = name
                    entry.tool_args = args
        else:
            entry.kind = "unknown"

        if result.threat_type:
            entry.threat_type = result.threat_type
            entry.threat_score = result.threat_score
            entry.threat_details = result.threat_details

        line = json.dumps(entry.to_dict(), ensure_ascii=False, separators=(",", ":"))
        try:
            with self._lock:
                self._file.write(line + "\n")
                self._file.flush()
        except (OSError, ValueError) as exc:
            _log.error("audit log error: %s", exc)
            metrics.AUDIT_LOG_ERRORS.inc()

        if result.action is Action.BLOCK and self._alerter is not None:
            subject = ctx.identity.subject if ctx.identity is not None else ""
            self._alerter(
                {
                    "rule_name": result.rule_name or result.reason,
                    "method": entry.method,
                    "tool_name": entry.tool_name,
                    "reason": result.reason,
                    "subject": subject,
                }
            )
        return entry

    def close(self) -> None:
        with self._lock:
            self._file.close()

    def __enter__(self) -> "AuditLogger":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()