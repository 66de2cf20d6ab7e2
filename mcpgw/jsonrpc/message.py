"""JSON-RPC 2.0 messages whose id, params and result stay as raw JSON text."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any


class Kind(enum.Enum):
    """What kind of JSON-RPC message this is."""

    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    UNKNOWN = "unknown"


def _raw(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass
class ErrorObject:
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            out["data"] = json.loads(self.data)
        return out


@dataclass
class Message:
    """A JSON-RPC 2.0 message. ``id``, ``params`` and ``result`` hold raw JSON text."""

    jsonrpc: str = ""
    id: str | None = None
    method: str = ""
    params: str | None = None
    result: str | None = None
    error: ErrorObject | None = None

    def kind(self) -> Kind:
        has_id = bool(self.id) and self.id != "null"
        has_method = self.method != ""
        if has_id and has_method:
            return Kind.REQUEST
        if has_id:
            return Kind.RESPONSE
        if has_method:
            return Kind.NOTIFICATION
        return Kind.UNKNOWN

    def is_request(self) -> bool:
        return self.kind() is Kind.REQUEST

    def is_response(self) -> bool:
        return self.kind() is Kind.RESPONSE

    def is_notification(self) -> bool:
        return self.kind() is Kind.NOTIFICATION

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id:
            out["id"] = json.loads(self.id)
        if self.method:
            out["method"] = self.method
        if self.params:
            out["params"] = json.loads(self.params)
        if self.result:
            out["result"] = json.loads(self.result)
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out

    def to_json(self) -> str:
        return _raw(self.to_dict())


def parse_message(data: str | bytes) -> Message:
    """Parse one JSON-RPC message; raises ValueError if it is not a valid message."""
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8")
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError("JSON-RPC message must be an object")
    jsonrpc = obj.get("jsonrpc", "")
    method = obj.get("method", "")
    if not isinstance(jsonrpc, str) or not isinstance(method, str):
        raise ValueError("jsonrpc and method must be strings")
    error = None
    err = obj.get("error")
    if err is not None:
        if not isinstance(err, dict):
            raise ValueError("error must be an object")
        code = err.get("code", 0)
        text = err.get("message", "")
        if not isinstance(code, int) or isinstance(code, bool) or not isinstance(text, str):
            raise ValueError("invalid error object")
        error = ErrorObject(code, text, _raw(err["data"]) if "data" in err else None)
    return Message(
        jsonrpc=jsonrpc,
        id=_raw(obj["id"]) if "id" in obj else None,
        method=method,
        params=_raw(obj["params"]) if "params" in obj else None,
        result=_raw(obj["result"]) if "result" in obj else None,
        error=error,
    )