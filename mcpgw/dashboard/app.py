"""Dashboard HTTP API: routing, JSON responses and a WSGI entry point."""

from __future__ import annotations

import http
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Protocol
from urllib.parse import parse_qs

from mcpgw.dashboard.analytics import analytics_report
from mcpgw.dashboard.audit_api import query_audit
from mcpgw.dashboard.stats import collect_stats
from mcpgw.jsonrpc.codec import LineTooLongError
from mcpgw.metrics import Registry

_ANALYTICS_ROUTES = {
    "/api/analytics/by-server": "upstream",
    "/api/analytics/by-user": "subject",
    "/api/analytics/by-tool": "tool",
    "/api/analytics/threats": "threat",
}


class StatusProvider(Protocol):
    """Supplies live gateway status."""

    def upstream(self) -> str: ...

    def upstream_ready(self) -> bool: ...

    def circuit_breaker_state(self) -> str: ...

    def active_session_count(self) -> int: ...


@dataclass
class DashboardConfig:
    """What the dashboard reads from."""

    audit_log_path: str | Path = ""
    status_provider: StatusProvider | None = None
    registry: Registry | None = None


@dataclass
class Response:
    """An HTTP response produced by the dashboard."""

    status: int
    body: bytes
    content_type: str = "application/json"
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)

    @classmethod
    def of_json(cls, value: Any, status: int = 200) -> "Response":
        return cls(status, (json.dumps(value) + "\n").encode("utf-8"))

    @classmethod
    def error(cls, status: int, text: str) -> "Response":
        return cls(
            status,
            (text + "\n").encode("utf-8"),
            "text/plain; charset=utf-8",
            {"X-Content-Type-Options": "nosniff"},
        )


def _first(query: Mapping[str, Any], key: str) -> str:
    value = query.get(key, "")
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return value or ""


_Handler = Callable[[Mapping[str, Any]], Response]


class DashboardApp:
    """Serves the dashboard JSON API; usable directly or as a WSGI application."""

    def __init__(self, config: DashboardConfig | None = None) -> None:
        self.config = config or DashboardConfig()
        self._routes: dict[str, _Handler] = {
            "/api/stats": self._stats,
            "/api/audit": self._audit,
            "/api/status": self._status,
        }
        for path, dimension in _ANALYTICS_ROUTES.items():
            self._routes[path] = self._analytics_handler(dimension)

    def handle(self, method: str, path: str, query: Mapping[str, Any] | None = None) -> Response:
        """Dispatch one request and return its response."""
        handler = self._routes.get(path)
        if handler is None:
            return Response.error(404, "404 page not found")
        if method.upper() != "GET":
            return Response.error(405, "Method Not Allowed")
        return handler(query or {})

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        query = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
        response = self.handle(
            environ.get("REQUEST_METHOD", "GET"), environ.get("PATH_INFO", "/") or "/", query
        )
        phrase = http.HTTPStatus(response.status).phrase
        headers = [
            ("Content-Type", response.content_type),
            ("Content-Length", str(len(response.body))),
            *response.headers.items(),
        ]
        start_response(f"{response.status} {phrase}", headers)
        return [response.body]

    def _stats(self, query: Mapping[str, Any]) -> Response:
        return Response.of_json(collect_stats(self.config.registry).to_dict())

    def _audit(self, query: Mapping[str, Any]) -> Response:
        try:
            return Response.of_json(query_audit(self.config.audit_log_path, query))
        except (OSError, LineTooLongError):
            return Response.error(500, "Internal Server Error")

    def _status(self, query: Mapping[str, Any]) -> Response:
        provider = self.config.status_provider
        if provider is None:
            body = {"upstream": "", "upstream_ready": False, "circuit_breaker": "",
                    "active_sessions": 0}
        else:
            body = {
                "upstream": provider.upstream(),
                "upstream_ready": provider.upstream_ready(),
                "circuit_breaker": provider.circuit_breaker_state(),
                "active_sessions": provider.active_session_count(),
            }
        return Response.of_json(body)

    def _analytics_handler(self, dimension: str) -> _Handler:
        def handler(query: Mapping[str, Any]) -> Response:
            try:
                report = analytics_report(
                    self.config.audit_log_path, dimension,
                    _first(query, "from"), _first(query, "to"),
                )
            except (OSError, LineTooLongError):
                return Response.error(500, "Internal Server Error")
            return Response.of_json(report)

        return handler