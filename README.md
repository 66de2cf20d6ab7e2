# mcpgw

Building blocks for a gateway that sits between MCP clients and servers.
It reads and writes newline-delimited JSON-RPC 2.0, runs each message
through a chain of interceptors, writes an audit trail, keeps metrics and
serves a small read-only JSON dashboard API over WSGI.

The package has no third-party dependencies.

## Install

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## What is in it

### `mcpgw.jsonrpc`

- `mcpgw.jsonrpc.message`: `Message`, `ErrorObject` and `Kind`.
  `parse_message(data)` builds a `Message` from JSON text or bytes and
  raises `ValueError` if the input is not a JSON-RPC object. The `id`,
  `params` and `result` fields hold compact JSON text. `Message.kind()`
  tells a request, a response and a notification apart (a `null` id counts
  as no id), and `is_request()`, `is_response()` and `is_notification()`
  are shortcuts for it. `Message.to_dict()` and `Message.to_json()`
  serialise it again.
- `mcpgw.jsonrpc.codec`: `scan(stream)` yields a `ScannedLine` for each
  non-empty line of a binary NDJSON stream. `ScannedLine.raw` keeps the
  line's bytes as they were, and `ScannedLine.message` is `None` when the
  line does not parse, so such lines can be passed on rather than dropped.
  A line longer than 1 MiB raises `LineTooLongError`.
  `encode(stream, msg)` and `encode_raw(stream, raw)` write one line each.

### `mcpgw.intercept`

- `mcpgw.intercept.context`: `RequestContext` holds the request id, the
  upstream and the authenticated `Identity` (subject, method, roles). It
  cannot be changed in place: `with_request_id`, `with_upstream` and
  `with_identity` return a new copy.
- `mcpgw.intercept.interceptor`: `Direction`, `Action`, `Result`, the
  abstract `Interceptor` and `Chain`. `Chain.process` runs the interceptors
  in order and stops at the first `Action.BLOCK`. A redacted body is handed
  on to the interceptors after it. When nothing blocks, the result keeps the
  last redaction, or failing that the threat with the highest score.
- `mcpgw.intercept.ratelimit`: `RateLimitInterceptor(rate, burst)` keeps
  one token bucket per subject, with `"anonymous"` for callers who have no
  identity. `ToolRateLimitInterceptor(rpm, burst)` keeps one bucket per
  subject and tool, and applies only to `tools/call`. Both let
  server-to-client traffic through and block with error code `-32429`. A
  background thread drops buckets that have been idle for five minutes.
  Call `close()` or use them as context managers to stop it. Both accept an
  optional `clock` callable that returns seconds.
  `extract_tool_name(params)` reads the tool name from `tools/call` params.
- `mcpgw.intercept.audit`: `AuditLogger(path, alerter=None)` appends one
  JSON line per message as an `AuditEntry` and returns the entry it wrote.
  If a write fails, it logs the error and increments
  `mcpgw_audit_log_errors_total`, and it does not raise. On a block it
  calls `alerter`, if one is given, with a dict of rule name, method, tool
  name, reason and subject.

### `mcpgw.metrics`

A small in-process metrics registry with `Counter`, `Gauge`, `Histogram`
and `Registry`. The module defines the gateway's standard `mcpgw_*`
metrics. `register_defaults(registry=None)` registers any of them that are
not yet registered, by default with `DEFAULT_REGISTRY`.

### `mcpgw.dashboard`

- `stats.collect_stats(registry=None)`: request totals, the blocked count
  and rate, active sessions, upstream errors, circuit-breaker trips,
  latency p50/p95/p99 and requests by method.
- `audit_api.query_audit(path, query)`: matching audit entries, newest
  first, with `limit` (default 50) and `offset` paging. The filters are
  `method`, `subject`, `upstream` and `tool` (case-insensitive substring
  matches) and `action` and `direction` (exact matches). Only the last
  10 MB of a larger log is read.
- `analytics.analytics_report(path, dimension, from_str, to_str)`: pass
  and block totals grouped by `upstream`, `subject`, `tool` or `threat`,
  optionally limited to an RFC 3339 period.
- `app.DashboardApp(DashboardConfig(...))`: serves the API for `GET`
  requests on these paths:
  - `/api/stats`
  - `/api/audit`
  - `/api/status`
  - `/api/analytics/by-server`
  - `/api/analytics/by-user`
  - `/api/analytics/by-tool`
  - `/api/analytics/threats`

  It can be called directly with `handle(method, path, query)` or used as a
  WSGI application.

## Example

```python
import io
from mcpgw.jsonrpc.codec import scan
from mcpgw.intercept.context import RequestContext, Identity
from mcpgw.intercept.interceptor import Chain, Direction
from mcpgw.intercept.ratelimit import RateLimitInterceptor

with RateLimitInterceptor(rate=10, burst=3) as limiter:
    chain = Chain(limiter)
    ctx = RequestContext().with_identity(Identity(subject="alice"))

    stream = io.BytesIO(b'{"jsonrpc":"2.0","id":1,"method":"tools/list"}\n')
    for line in scan(stream):
        result = chain.process(ctx, Direction.CLIENT_TO_SERVER, line.message, line.raw)
        print(result.action)
```

To serve the dashboard with the standard library:

```python
from wsgiref.simple_server import make_server
from mcpgw.dashboard.app import DashboardApp, DashboardConfig

app = DashboardApp(DashboardConfig(audit_log_path="audit.jsonl"))
make_server("127.0.0.1", 9090, app).serve_forever()
```

## What it does not do

- It has no command and no running proxy. Wiring the stream reader, the
  interceptor chain and the upstream connection together is left to the
  caller.
- It has no policy engine. Nothing in the package evaluates allow or deny
  rules, and the dashboard has no endpoints to view, test or update a
  policy.
- It does not authenticate callers. An `Identity` has to be put on the
  `RequestContext` by the caller.
- The dashboard serves JSON only. It has no web frontend and no endpoints
  for approving or denying servers. Its status values come from a
  caller-supplied `StatusProvider`.
- `AuditLogger` appends to a single file and does not rotate it.