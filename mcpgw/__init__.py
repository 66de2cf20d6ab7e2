"""Core components of an MCP gateway: JSON-RPC framing, interceptors, audit, metrics and dashboard API."""

__version__ = "0.1.0"