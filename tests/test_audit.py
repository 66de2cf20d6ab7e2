import json
from datetime import datetime, timezone

import pytest

from mcpgw import metrics
from mcpgw.intercept.audit import AuditEntry, AuditLogger, kind_string
from mcpgw.intercept.context import Identity, RequestContext
from mcpgw.intercept.interceptor import Action, Direction, Result
from mcpgw.jsonrpc.message import Kind, Message


@pytest.fixture
def logger_and_path(tmp_path):
    path = tmp_path / "audit.jsonl"
    logger = AuditLogger(path)
    yield logger, path
    logger.close()


def _read_entries(path):
    lines = path.read_text(encoding="utf-8").strip().split("\n")
    return [AuditEntry.from_dict(json.loads(line)) for line in lines if line]


def test_pass_message(logger_and_path):
    logger, path = logger_and_path
    msg = Message(jsonrpc="2.0", id="1", method="tools/list")
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, msg,
               b'{"jsonrpc":"2.0","id":1,"method":"tools/list"}', Result(Action.PASS))
    entries = _read_entries(path)
    assert len(entries) == 1
    e = entries[0]
    assert e.direction == "c2s"
    assert e.method == "tools/list"
    assert e.id == "1"
    assert e.kind == "request"
    assert e.action == "pass"
    assert e.reason == ""


def test_block_message(logger_and_path):
    logger, path = logger_and_path
    msg = Message(jsonrpc="2.0", id="2", method="tools/call", params='{"name":"exec_cmd"}')
    result = Result(Action.BLOCK, reason='denied by policy rule "deny-exec"')
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, msg, b"raw", result)
    entries = _read_entries(path)
    assert len(entries) == 1
    assert entries[0].action == "block"
    assert "deny-exec" in entries[0].reason
    assert entries[0].tool_name == "exec_cmd"


def test_nil_message(logger_and_path):
    logger, path = logger_and_path
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, None, b"not json", Result(Action.PASS))
    entries = _read_entries(path)
    assert len(entries) == 1
    assert entries[0].kind == "unknown"
    assert entries[0].method == ""


def test_server_to_client(logger_and_path):
    logger, path = logger_and_path
    msg = Message(jsonrpc="2.0", id="1", result='{"tools":[]}')
    logger.log(RequestContext(), Direction.SERVER_TO_CLIENT, msg, b"raw", Result(Action.PASS))
    entries = _read_entries(path)
    assert entries[0].direction == "s2c"
    assert entries[0].kind == "response"


def test_notification(logger_and_path):
    logger, path = logger_and_path
    msg = Message(jsonrpc="2.0", method="notifications/initialized")
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, msg, b"raw", Result(Action.PASS))
    assert _read_entries(path)[0].kind == "notification"


def test_records_size(logger_and_path):
    logger, path = logger_and_path
    raw = b'{"jsonrpc":"2.0","id":1,"method":"initialize","params":{}}'
    msg = Message(jsonrpc="2.0", id="1", method="initialize")
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, msg, raw, Result(Action.PASS))
    assert _read_entries(path)[0].size == len(raw)


def test_records_request_id(logger_and_path):
    logger, path = logger_and_path
    ctx = RequestContext().with_request_id("test-req-id-123")
    msg = Message(jsonrpc="2.0", id="1", method="tools/list")
    logger.log(ctx, Direction.CLIENT_TO_SERVER, msg, b"raw", Result(Action.PASS))
    assert _read_entries(path)[0].request_id == "test-req-id-123"


def test_redact_message(logger_and_path):
    logger, path = logger_and_path
    msg = Message(jsonrpc="2.0", id="3", method="tools/call", params='{"name":"send_payment"}')
    result = Result(Action.REDACT, reason="PII redacted: credit_card",
                    redacted_body=b'{"redacted":true}')
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, msg, b"raw", result)
    entries = _read_entries(path)
    assert entries[0].action == "redact"
    assert "PII redacted" in entries[0].reason


def test_kind_string():
    assert kind_string(Kind.REQUEST) == "request"
    assert kind_string(Kind.RESPONSE) == "response"
    assert kind_string(Kind.NOTIFICATION) == "notification"
    assert kind_string(Kind.UNKNOWN) == "unknown"


def test_context_fields_and_tool_args(logger_and_path):
    logger, path = logger_and_path
    ctx = (RequestContext()
           .with_upstream("http://localhost:8080")
           .with_identity(Identity(subject="alice")))
    msg = Message(jsonrpc="2.0", id='"abc"', method="tools/call",
                  params='{"name":"read_file","arguments":{"path":"/tmp/x"}}')
    logger.log(ctx, Direction.CLIENT_TO_SERVER, msg, b"raw", Result(Action.PASS))
    e = _read_entries(path)[0]
    assert e.subject == "alice"
    assert e.upstream == "http://localhost:8080"
    assert e.id == "abc"
    assert e.tool_name == "read_file"
    assert e.tool_args == {"path": "/tmp/x"}


def test_threat_info_recorded(logger_and_path):
    logger, path = logger_and_path
    msg = Message(jsonrpc="2.0", id="1", method="tools/call", params='{"name":"x"}')
    result = Result(Action.PASS, threat_type="pii_detected", threat_score=0.75,
                    threat_details={"field": "email"})
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, msg, b"raw", result)
    e = _read_entries(path)[0]
    assert e.threat_type == "pii_detected"
    assert e.threat_score == 0.75
    assert e.threat_details == {"field": "email"}


def test_alert_on_block_uses_reason_as_rule_name(tmp_path):
    alerts = []
    with AuditLogger(tmp_path / "a.jsonl", alerter=alerts.append) as logger:
        ctx = RequestContext().with_identity(Identity(subject="bob"))
        msg = Message(jsonrpc="2.0", id="1", method="tools/call", params='{"name":"exec_cmd"}')
        logger.log(ctx, Direction.CLIENT_TO_SERVER, msg, b"raw",
                   Result(Action.BLOCK, reason="rate limit exceeded"))
        logger.log(ctx, Direction.CLIENT_TO_SERVER, msg, b"raw", Result(Action.PASS))
    assert alerts == [{
        "rule_name": "rate limit exceeded",
        "method": "tools/call",
        "tool_name": "exec_cmd",
        "reason": "rate limit exceeded",
        "subject": "bob",
    }]


def test_write_failure_counts_error(tmp_path):
    metrics.register_defaults(metrics.Registry())
    logger = AuditLogger(tmp_path / "a.jsonl")
    logger.close()

    def count():
        samples = metrics.AUDIT_LOG_ERRORS.collect().samples
        return samples[0].value if samples else 0.0

    before = count()
    logger.log(RequestContext(), Direction.CLIENT_TO_SERVER, None, b"x", Result(Action.PASS))
    assert count() == before + 1


def test_entry_round_trip():
    entry = AuditEntry(
        timestamp=datetime(2025, 1, 1, 0, 1, 0, tzinfo=timezone.utc),
        direction="c2s", method="tools/call", kind="request", size=200,
        action="block", reason="denied by policy",
    )
    data = entry.to_dict()
    assert data["timestamp"] == "2025-01-01T00:01:00Z"
    assert AuditEntry.from_dict(json.loads(json.dumps(data))) == entry


def test_entry_from_dict_rejects_bad_types():
    with pytest.raises(ValueError):
        AuditEntry.from_dict({"action": 5})
    with pytest.raises(ValueError):
        AuditEntry.from_dict({"timestamp": "yesterday"})