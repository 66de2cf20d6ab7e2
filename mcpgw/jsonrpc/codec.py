"""Reading and writing newline-delimited JSON-RPC streams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Iterator

from mcpgw.jsonrpc.message import Message, parse_message

MAX_LINE_SIZE = 1024 * 1024


class LineTooLongError(ValueError):
    """A line in the stream exceeds the maximum line size."""


@dataclass(frozen=True)
class ScannedLine:
    """One non-empty line: its raw bytes and the parsed message, or None if unparsable."""

    raw: bytes
    message: Message | None


def scan(stream: BinaryIO) -> Iterator[ScannedLine]:
    """Yield each non-empty line of an NDJSON stream; invalid JSON yields message None."""
    for line in stream:
        if isinstance(line, str):
            line = line.encode("utf-8")
        if line.endswith(b"\n"):
            line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
        if len(line) > MAX_LINE_SIZE:
            raise LineTooLongError(f"line longer than {MAX_LINE_SIZE} bytes")
        if not line:
            continue
        try:
            msg = parse_message(line)
        except ValueError:
            msg = None
        yield ScannedLine(bytes(line), msg)


def encode(stream: BinaryIO, msg: Message) -> None:
    """Serialize a message and write it as one NDJSON line."""
    stream.write(msg.to_json().encode("utf-8") + b"\n")


def encode_raw(stream: BinaryIO, raw: bytes) -> None:
    """Write raw bytes unchanged followed by a newline."""
    stream.write(bytes(raw) + b"\n")