"""JSON-RPC 2.0 messages and NDJSON stream framing."""