"""Interceptor protocol and the chain that runs interceptors in order."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import Any

from mcpgw.intercept.context import RequestContext
from mcpgw.jsonrpc.message import Message


class Direction(enum.Enum):
    """Which way a message travels."""

    CLIENT_TO_SERVER = "c2s"
    SERVER_TO_CLIENT = "s2c"

    def __str__(self) -> str:
        return self.value


class Action(enum.Enum):
    """Verdict of an interceptor; each value is the member name in lower case."""

    @staticmethod
    def _generate_next_value_(name: str, start: int, count: int, last_values: list) -> str:
        return name.lower()

    PASS = enum.auto()
    BLOCK = enum.auto()
    REDACT = enum.auto()


@dataclass
class Result:
    """Outcome of inspecting one message."""

    action: Action = Action.PASS
    reason: str = ""
    rule_name: str = ""
    error_code: int = 0
    threat_type: str = ""
    threat_score: float = 0.0
    threat_details: dict[str, Any] = field(default_factory=dict)
    redacted_body: bytes = b""


class Interceptor(abc.ABC):
    """Inspects a message and decides whether it passes."""

    @abc.abstractmethod
    def intercept(
        self, ctx: RequestContext, direction: Direction, msg: Message | None, raw: bytes | None
    ) -> Result:
        raise NotImplementedError


class Chain:
    """Runs interceptors in order, stopping at the first block."""

    def __init__(self, *interceptors: Interceptor) -> None:
        self._interceptors = list(interceptors)

    def process(
        self, ctx: RequestContext, direction: Direction, msg: Message | None, raw: bytes | None
    ) -> Result:
        best = Result()
        current = raw
        for interceptor in self._interceptors:
            result = interceptor.intercept(ctx, direction, msg, current)
            if result.action is Action.BLOCK:
                return result
            if result.action is Action.REDACT and result.redacted_body:
                current = result.redacted_body
                best = result
            elif result.threat_type and result.threat_score > best.threat_score:
                best = result
        return best