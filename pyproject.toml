[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcpgw"
version = "0.1.0"
description = "Building blocks for an MCP gateway: JSON-RPC framing, interceptor chains, rate limiting, audit logging, metrics and a dashboard API."
requires-python = ">=3.10"
dependencies = []
keywords = ["mcp", "json-rpc", "gateway", "proxy", "rate-limit", "audit", "dashboard", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mcpgw"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
