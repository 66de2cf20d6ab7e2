import io
import json
from datetime import datetime, timezone

from mcpgw.dashboard.app import DashboardApp, DashboardConfig, Response
from mcpgw.intercept.audit import AuditEntry
from mcpgw.metrics import Counter, Gauge, Registry


class FakeStatus:
    def upstream(self):
        return "http://localhost:8080"

    def upstream_ready(self):
        return True

    def circuit_breaker_state(self):
        return "closed"

    def active_session_count(self):
        return 5


def write_log(tmp_path, entries):
    path = tmp_path / "audit.jsonl"
    path.write_text("\n".join(json.dumps(e.to_dict()) for e in entries) + "\n", encoding="utf-8")
    return path


def ts(minute):
    return datetime(2025, 1, 1, 0, minute, tzinfo=timezone.utc)


def test_status_get():
    app = DashboardApp(DashboardConfig(status_provider=FakeStatus()))
    resp = app.handle("GET", "/api/status")
    assert resp.status == 200
    assert resp.json() == {
        "upstream": "http://localhost:8080",
        "upstream_ready": True,
        "circuit_breaker": "closed",
        "active_sessions": 5,
    }


def test_status_nil_provider():
    resp = DashboardApp().handle("GET", "/api/status")
    assert resp.status == 200
    assert resp.json()["upstream"] == ""
    assert resp.json()["upstream_ready"] is False


def test_status_method_not_allowed():
    app = DashboardApp(DashboardConfig(status_provider=FakeStatus()))
    resp = app.handle("POST", "/api/status")
    assert resp.status == 405
    assert resp.body == b"Method Not Allowed\n"


def test_audit_get_newest_first(tmp_path):
    path = write_log(
        tmp_path,
        [
            AuditEntry(timestamp=ts(0), direction="c2s", method="tools/call", kind="request",
                       size=100, action="pass"),
            AuditEntry(timestamp=ts(1), direction="c2s", method="tools/call", kind="request",
                       size=200, action="block", reason="denied by policy"),
        ],
    )
    resp = DashboardApp(DashboardConfig(audit_log_path=str(path))).handle("GET", "/api/audit")
    assert resp.status == 200
    body = resp.json()
    assert body["total"] == 2
    assert [e["action"] for e in body["entries"]] == ["block", "pass"]


def test_audit_get_with_filter(tmp_path):
    path = write_log(
        tmp_path,
        [
            AuditEntry(timestamp=ts(0), direction="c2s", method="tools/call", action="pass"),
            AuditEntry(timestamp=ts(1), direction="c2s", method="tools/list", action="pass"),
            AuditEntry(timestamp=ts(2), direction="c2s", method="tools/call", action="block"),
        ],
    )
    app = DashboardApp(DashboardConfig(audit_log_path=str(path)))
    body = app.handle("GET", "/api/audit", {"action": "block"}).json()
    assert body["total"] == 1
    assert len(body["entries"]) == 1
    assert body["entries"][0]["action"] == "block"


def test_audit_no_file():
    app = DashboardApp(DashboardConfig(audit_log_path="/nonexistent/audit.jsonl"))
    resp = app.handle("GET", "/api/audit")
    assert resp.status == 200
    assert resp.json() == {"entries": [], "total": 0}


def test_audit_empty_path():
    resp = DashboardApp(DashboardConfig(audit_log_path="")).handle("GET", "/api/audit")
    assert resp.status == 200
    assert resp.json()["total"] == 0


def test_audit_unreadable_path_is_server_error(tmp_path):
    app = DashboardApp(DashboardConfig(audit_log_path=str(tmp_path)))
    assert app.handle("GET", "/api/audit").status == 500


def test_analytics_route(tmp_path):
    path = write_log(
        tmp_path,
        [
            AuditEntry(timestamp=ts(0), upstream="http://a", action="block"),
            AuditEntry(timestamp=ts(1), upstream="http://a", action="pass"),
            AuditEntry(timestamp=ts(2), upstream="http://b", action="pass"),
        ],
    )
    app = DashboardApp(DashboardConfig(audit_log_path=str(path)))
    body = app.handle("GET", "/api/analytics/by-server").json()
    assert [(g["key"], g["total"]) for g in body["groups"]] == [("http://a", 2), ("http://b", 1)]


def test_analytics_route_with_period(tmp_path):
    path = write_log(
        tmp_path,
        [
            AuditEntry(timestamp=ts(0), subject="alice", action="pass"),
            AuditEntry(timestamp=ts(30), subject="bob", action="pass"),
        ],
    )
    app = DashboardApp(DashboardConfig(audit_log_path=str(path)))
    body = app.handle("GET", "/api/analytics/by-user", {"from": ["2025-01-01T00:10:00Z"]}).json()
    assert [g["key"] for g in body["groups"]] == ["bob"]
    assert body["period"] == {"from": "2025-01-01T00:10:00Z", "to": ""}


def test_analytics_method_not_allowed():
    assert DashboardApp().handle("DELETE", "/api/analytics/threats").status == 405


def test_stats_route():
    registry = Registry()
    requests = Counter("requests_total", "requests", ("method", "action"), "mcpgw")
    sessions = Gauge("active_sessions", "sessions", "mcpgw")
    registry.register(requests, sessions)
    requests.labels("tools/call", "block").inc()
    requests.labels("tools/list", "pass").inc(3)
    sessions.set(2)

    body = DashboardApp(DashboardConfig(registry=registry)).handle("GET", "/api/stats").json()
    assert body["requests_total"] == 4
    assert body["requests_blocked"] == 1
    assert body["blocked_rate"] == 0.25
    assert body["active_sessions"] == 2
    assert body["requests_by_method"] == {"tools/call": 1, "tools/list": 3}


def test_unknown_path_is_not_found():
    resp = DashboardApp().handle("GET", "/api/unknown")
    assert resp.status == 404
    assert resp.content_type.startswith("text/plain")


def test_response_json():
    assert Response(200, b'{"a": 1}').json() == {"a": 1}


def test_wsgi_call(tmp_path):
    path = write_log(
        tmp_path,
        [
            AuditEntry(timestamp=ts(0), action="pass"),
            AuditEntry(timestamp=ts(1), action="block"),
        ],
    )
    app = DashboardApp(DashboardConfig(audit_log_path=str(path)))
    captured = {}

    def start_response(status, headers):
        captured["status"] = status
        captured["headers"] = dict(headers)

    environ = {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": "/api/audit",
        "QUERY_STRING": "action=block",
        "wsgi.input": io.BytesIO(b""),
    }
    body = b"".join(app(environ, start_response))
    assert captured["status"] == "200 OK"
    assert captured["headers"]["Content-Type"] == "application/json"
    assert json.loads(body)["total"] == 1


def test_wsgi_method_not_allowed():
    captured = {}

    def start_response(status, headers):
        captured["status"] = status

    environ = {"REQUEST_METHOD": "PUT", "PATH_INFO": "/api/stats", "QUERY_STRING": ""}
    body = b"".join(DashboardApp()(environ, start_response))
    assert captured["status"] == "405 Method Not Allowed"
    assert body == b"Method Not Allowed\n"