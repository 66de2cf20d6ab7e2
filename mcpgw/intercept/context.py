"""Per-request context: request id, upstream and authenticated identity."""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""

    subject: str = ""
    method: str = ""
    roles: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RequestContext:
    """Immutable values carried alongside a message; ``with_*`` return new contexts."""

    request_id: str = ""
    upstream: str = ""
    identity: Identity | None = None

    def with_request_id(self, request_id: str) -> "RequestContext":
        return replace(self, request_id=request_id)

    def with_upstream(self, upstream: str) -> "RequestContext":
        return replace(self, upstream=upstream)

    def with_identity(self, identity: Identity | None) -> "RequestContext":
        return replace(self, identity=identity)