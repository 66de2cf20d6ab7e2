"""Token-bucket rate limiting per identity and per identity/tool pair."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Callable

from mcpgw.intercept.context import RequestContext
from mcpgw.intercept.interceptor import Action, Direction, Interceptor, Result
from mcpgw.jsonrpc.message import Message

SWEEP_INTERVAL = 60.0
IDLE_TTL = 300.0
RATE_LIMIT_ERROR_CODE = -32429


def extract_tool_name(params: str | bytes | None) -> str:
    """Return the ``name`` field of tools/call params, or "" if absent."""
    if not params:
        return ""
    try:
        obj = json.loads(params)
    except ValueError:
        return ""
    if isinstance(obj, dict) and isinstance(obj.get("name"), str):
        return obj["name"]
    return ""


def _subject(ctx: RequestContext) -> str:
    if ctx.identity is not None and ctx.identity.subject:
        return ctx.identity.subject
    return "anonymous"


@dataclass
class _Bucket:
    tokens: float
    last: float


class _TokenBuckets:
    """Keyed token buckets with a background sweeper for idle keys."""

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] | None) -> None:
        self._rate = rate
        self._burst = burst
        self._clock = clock or time.monotonic
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._sweep_loop, daemon=True)
        self._thread.start()

    def take(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.setdefault(key, _Bucket(float(self._burst), now))
            elapsed = max(0.0, now - bucket.last)
            bucket.tokens = min(float(self._burst), bucket.tokens + elapsed * self._rate)
            bucket.last = now
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True
            return False

    def _sweep_loop(self) -> None:
        while not self._stop.wait(SWEEP_INTERVAL):
            self.sweep()

    def sweep(self) -> None:
        with self._lock:
            cutoff = self._clock() - IDLE_TTL
            for key in [k for k, b in self._buckets.items() if b.last < cutoff]:
                del self._buckets[key]

    def count(self) -> int:
        with self._lock:
            return len(self._buckets)

    def close(self) -> None:
        self._stop.set()
        self._thread.join()


class RateLimitInterceptor(Interceptor):
    """Limits client-to-server messages per identity subject."""

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] | None = None) -> None:
        self._buckets = _TokenBuckets(rate if rate > 0 else 1.0, max(burst, 1), clock)

    def intercept(
        self, ctx: RequestContext, direction: Direction, msg: Message | None, raw: bytes | None
    ) -> Result:
        if direction is Direction.SERVER_TO_CLIENT:
            return Result()
        if self._buckets.take(_subject(ctx)):
            return Result()
        return Result(Action.BLOCK, reason="rate limit exceeded", error_code=RATE_LIMIT_ERROR_CODE)

    def sweep(self) -> None:
        """Drop buckets unused for more than five minutes."""
        self._buckets.sweep()

    def bucket_count(self) -> int:
        """Number of live buckets."""
        return self._buckets.count()

    def close(self) -> None:
        """Stop the background sweeper."""
        self._buckets.close()

    def __enter__(self) -> RateLimitInterceptor:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ToolRateLimitInterceptor(Interceptor):
    """Limits tools/call requests per subject and tool name; ``rpm`` is requests per minute."""

    def __init__(self, rpm: float, burst: int, clock: Callable[[], float] | None = None) -> None:
        if rpm <= 0:
            rpm = 60.0
        if burst < 1:
            burst = max(int(rpm / 60.0), 1)
        self._buckets = _TokenBuckets(rpm / 60.0, burst, clock)

    def intercept(
        self, ctx: RequestContext, direction: Direction, msg: Message | None, raw: bytes | None
    ) -> Result:
        if direction is Direction.SERVER_TO_CLIENT:
            return Result()
        if msg is None or msg.method != "tools/call":
            return Result()
        tool = extract_tool_name(msg.params)
        if not tool:
            return Result()
        if self._buckets.take(f"{_subject(ctx)}:{tool}"):
            return Result()
        return Result(
            Action.BLOCK,
            reason=f"tool rate limit exceeded for {tool}",
            error_code=RATE_LIMIT_ERROR_CODE,
        )

    def sweep(self) -> None:
        """Drop buckets unused for more than five minutes."""
        self._buckets.sweep()

    def bucket_count(self) -> int:
        """Number of live buckets."""
        return self._buckets.count()

    def close(self) -> None:
        """Stop the background sweeper."""
        self._buckets.close()

    def __enter__(self) -> ToolRateLimitInterceptor:
        return self

    def __exit__(self, *exc) -> None:
        self.close()