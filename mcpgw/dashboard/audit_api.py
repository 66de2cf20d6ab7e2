"""Querying the audit log: filtering, newest-first ordering and pagination."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Mapping

from mcpgw.intercept.audit import AuditEntry
from mcpgw.jsonrpc.codec import MAX_LINE_SIZE, LineTooLongError

DEFAULT_AUDIT_LIMIT = 50
MAX_AUDIT_FILE_SIZE = 10 * 1024 * 1024

_INT_RE = re.compile(r"[+-]?\d+")
_INT_MAX = 2**63 - 1


def _contains_fold(haystack: str, needle: str) -> bool:
    return needle.lower() in haystack.lower()


def _query_value(query: Mapping[str, Any], key: str) -> str:
    value = query.get(key, "")
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return value or ""


@dataclass(frozen=True)
class AuditFilter:
    """Criteria for audit entries; empty fields match everything."""

    method: str = ""
    action: str = ""
    direction: str = ""
    subject: str = ""
    upstream: str = ""
    tool: str = ""

    def matches(self, entry: AuditEntry) -> bool:
        if self.method and not _contains_fold(entry.method, self.method):
            return False
        if self.action and entry.action != self.action:
            return False
        if self.direction and entry.direction != self.direction:
            return False
        if self.subject and not _contains_fold(entry.subject, self.subject):
            return False
        if self.upstream and not _contains_fold(entry.upstream, self.upstream):
            return False
        if self.tool and not _contains_fold(entry.tool_name, self.tool):
            return False
        return True

    @staticmethod
    def from_query(query: Mapping[str, Any]) -> "AuditFilter":
        """Build a filter from query parameters (plain values or lists of values)."""
        return AuditFilter(
            method=_query_value(query, "method"),
            action=_query_value(query, "action"),
            direction=_query_value(query, "direction"),
            subject=_query_value(query, "subject"),
            upstream=_query_value(query, "upstream"),
            tool=_query_value(query, "tool"),
        )


def parse_int_default(value: str | None, default: int) -> int:
    """Parse a non-negative decimal integer, falling back to ``default``."""
    if not value or not _INT_RE.fullmatch(value):
        return default
    number = int(value)
    if number < 0 or number > _INT_MAX:
        return default
    return number


def _entries(stream: BinaryIO, skip_first: bool) -> Iterator[AuditEntry]:
    for index, line in enumerate(stream):
        line = line.rstrip(b"\n")
        if line.endswith(b"\r"):
            line = line[:-1]
        if len(line) > MAX_LINE_SIZE:
            raise LineTooLongError(f"audit log line longer than {MAX_LINE_SIZE} bytes")
        if skip_first and index == 0:
            continue
        if not line:
            continue
        try:
            yield AuditEntry.from_dict(json.loads(line))
        except ValueError:
            continue


def read_audit_log(path: str | Path, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
    """Read matching entries in file order; files over 10 MB are read from their last 10 MB."""
    audit_filter = audit_filter or AuditFilter()
    size = os.stat(path).st_size
    offset = max(size - MAX_AUDIT_FILE_SIZE, 0)
    with open(path, "rb") as stream:
        if offset:
            stream.seek(offset)
        # A tail read may start mid-line, so its first line is dropped.
        return [e for e in _entries(stream, skip_first=offset > 0) if audit_filter.matches(e)]


def query_audit(path: str | Path | None, query: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Newest-first page of matching entries plus the total match count."""
    query = query or {}
    if not path:
        return {"entries": [], "total": 0}
    limit = parse_int_default(_query_value(query, "limit"), DEFAULT_AUDIT_LIMIT)
    offset = parse_int_default(_query_value(query, "offset"), 0)
    try:
        entries = read_audit_log(path, AuditFilter.from_query(query))
    except FileNotFoundError:
        return {"entries": [], "total": 0}
    total = len(entries)
    entries.reverse()
    page = entries[offset:offset + limit] if offset < total else []
    return {"entries": [e.to_dict() for e in page], "total": total}