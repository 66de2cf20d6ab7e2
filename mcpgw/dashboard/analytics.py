"""Audit log analytics: pass/block counts grouped by upstream, subject, tool or threat."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from mcpgw.intercept.audit import AuditEntry
from mcpgw.jsonrpc.codec import MAX_LINE_SIZE, LineTooLongError

UNKNOWN_KEY = "(unknown)"
TOP_N = 5

DIMENSIONS: dict[str, Callable[[AuditEntry], str]] = {
    "upstream": lambda e: e.upstream,
    "subject": lambda e: e.subject,
    "tool": lambda e: e.tool_name,
    "threat": lambda e: e.threat_type,
}

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})T(\d{2}:\d{2}:\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)


def _parse_rfc3339(text: str) -> datetime | None:
    match = _RFC3339.match(text)
    if match is None:
        return None
    date, clock, fraction, zone = match.groups()
    digits = (fraction or ".")[1:7].ljust(6, "0")
    if zone == "Z":
        zone = "+00:00"
    try:
        return datetime.fromisoformat(f"{date}T{clock}.{digits}{zone}")
    except ValueError:
        return None


@dataclass
class AnalyticsGroup:
    """Counts for one value of the grouping dimension."""

    key: str
    total: int = 0
    passed: int = 0
    blocked: int = 0
    block_rate: float = 0.0
    top_tools: list[str] = field(default_factory=list)
    top_methods: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "total": self.total,
            "passed": self.passed,
            "blocked": self.blocked,
            "block_rate": self.block_rate,
            "top_tools": list(self.top_tools),
            "top_methods": list(self.top_methods),
        }


def scan_audit_log(
    path: str | Path | None, predicate: Callable[[AuditEntry], bool] | None = None
) -> list[AuditEntry]:
    """Read every parsable entry accepted by ``predicate``; an empty path gives no entries."""
    if not path:
        return []
    entries: list[AuditEntry] = []
    with open(path, "rb") as stream:
        for line in stream:
            line = line.rstrip(b"\n")
            if line.endswith(b"\r"):
                line = line[:-1]
            if len(line) > MAX_LINE_SIZE:
                raise LineTooLongError(f"audit log line longer than {MAX_LINE_SIZE} bytes")
            if not line:
                continue
            try:
                entry = AuditEntry.from_dict(json.loads(line))
            except ValueError:
                continue
            if predicate is None or predicate(entry):
                entries.append(entry)
    return entries


def top_n(counts: Mapping[str, int], n: int) -> list[str]:
    """Keys with the highest counts, most frequent first, at most ``n`` of them."""
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [key for key, _ in ranked[:n]]


def aggregate(entries: Iterable[AuditEntry], dimension: str) -> list[AnalyticsGroup]:
    """Group entries by ``dimension`` and order the groups by total, largest first."""
    extract = DIMENSIONS.get(dimension, lambda e: "")
    groups: dict[str, AnalyticsGroup] = {}
    tools: dict[str, dict[str, int]] = {}
    methods: dict[str, dict[str, int]] = {}

    for entry in entries:
        key = extract(entry) or UNKNOWN_KEY
        group = groups.get(key)
        if group is None:
            group = groups[key] = AnalyticsGroup(key)
            tools[key] = {}
            methods[key] = {}
        group.total += 1
        if entry.action == "block":
            group.blocked += 1
        else:
            group.passed += 1
        if entry.tool_name:
            tools[key][entry.tool_name] = tools[key].get(entry.tool_name, 0) + 1
        if entry.method:
            methods[key][entry.method] = methods[key].get(entry.method, 0) + 1

    for key, group in groups.items():
        group.block_rate = group.blocked / group.total if group.total else 0.0
        group.top_tools = top_n(tools[key], TOP_N)
        group.top_methods = top_n(methods[key], TOP_N)

    return sorted(groups.values(), key=lambda g: g.total, reverse=True)


def analytics_report(
    path: str | Path | None, dimension: str, from_str: str = "", to_str: str = ""
) -> dict[str, Any]:
    """Grouped analytics over the audit log, limited to the given RFC 3339 period.

    Bounds that do not parse are ignored. A missing log yields no groups; other
    read errors propagate.
    """
    since = _parse_rfc3339(from_str) if from_str else None
    until = _parse_rfc3339(to_str) if to_str else None

    def in_period(entry: AuditEntry) -> bool:
        if since is not None and (entry.timestamp is None or entry.timestamp < since):
            return False
        if until is not None and entry.timestamp is not None and entry.timestamp > until:
            return False
        return True

    try:
        entries = scan_audit_log(path, in_period)
    except FileNotFoundError:
        return {"groups": [], "period": {"from": "", "to": ""}}

    return {
        "groups": [g.to_dict() for g in aggregate(entries, dimension)],
        "period": {"from": from_str or "", "to": to_str or ""},
    }