"""Translate editor-side MCP server mappings into ACP server descriptors.

The editor describes MCP servers as a loose mapping::

    {"nvim": {"cmd": ["nvim-mcp"], "env": {"NVIM": "/tmp/nvim.sock"}},
     "docs": {"type": "http", "url": "https://example.com/mcp", "headers": {...}}}

Entries are validated here and rejected with ConfigError when malformed.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Union

from acp.schema import EnvVariable, HttpHeader, HttpMcpServer, McpServerStdio, SseMcpServer

from agent_chat.errors import ConfigError

McpServer = Union[McpServerStdio, HttpMcpServer, SseMcpServer]

_URL_TRANSPORTS = {"http", "sse"}


def _string_mapping(name: str, field: str, raw: Any) -> list[tuple[str, str]]:
    if raw is None:
        return []
    if not isinstance(raw, Mapping):
        raise ConfigError(f"mcp server {name!r}: {field} must be a mapping")
    pairs: list[tuple[str, str]] = []
    for key, value in raw.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ConfigError(f"mcp server {name!r}: {field} entries must map strings to strings")
        pairs.append((key, value))
    return pairs


def _server_name(name: str, config: Mapping[str, Any]) -> str:
    override = config.get("name")
    if override is None:
        return name
    if not isinstance(override, str) or not override:
        raise ConfigError(f"mcp server {name!r}: name must be a non-empty string")
    return override


def convert_mcp_server(name: str, config: Mapping[str, Any]) -> McpServer:
    """Build one ACP MCP server descriptor from an editor config entry.

    A missing or unrecognised ``type`` means stdio.
    """

    if not isinstance(config, Mapping):
        raise ConfigError(f"mcp server {name!r}: config must be a mapping")

    server_name = _server_name(name, config)
    transport = config.get("type")

    if transport in _URL_TRANSPORTS:
        url = config.get("url")
        if not isinstance(url, str) or not url:
            raise ConfigError(f"mcp server {name!r}: {transport} transport requires a url")
        headers = [HttpHeader(name=k, value=v) for k, v in _string_mapping(name, "headers", config.get("headers"))]
        if transport == "http":
            return HttpMcpServer(name=server_name, url=url, headers=headers, type="http")
        return SseMcpServer(name=server_name, url=url, headers=headers, type="sse")

    cmd = config.get("cmd")
    if not isinstance(cmd, list) or not cmd or not all(isinstance(part, str) for part in cmd):
        raise ConfigError(f"mcp server {name!r}: cmd must be a non-empty list of strings")
    if not cmd[0]:
        raise ConfigError(f"mcp server {name!r}: cmd[0] must name a command")
    env = [EnvVariable(name=k, value=v) for k, v in _string_mapping(name, "env", config.get("env"))]
    return McpServerStdio(name=server_name, command=cmd[0], args=list(cmd[1:]), env=env)


def build_mcp_servers(config: Mapping[str, Any] | None) -> list[McpServer]:
    """Convert a whole name -> config mapping, ordered by name."""
    if not config:
        return []
    if not isinstance(config, Mapping):
        raise ConfigError("mcp servers must be a mapping of name to config")
    return [convert_mcp_server(name, config[name]) for name in sorted(config)]


def filter_mcp_servers(servers: Iterable[McpServer], mcp_capabilities: Any | None) -> list[McpServer]:
    """Drop descriptors whose transport the agent did not advertise.

    stdio is mandatory for every agent and always passes.
    """

    supports_http = bool(getattr(mcp_capabilities, "http", False))
    supports_sse = bool(getattr(mcp_capabilities, "sse", False))
    filtered: list[McpServer] = []
    for server in servers:
        if isinstance(server, HttpMcpServer) and not supports_http:
            continue
        if isinstance(server, SseMcpServer) and not supports_sse:
            continue
        filtered.append(server)
    return filtered


def describe_server(server: McpServer) -> str:
    """Short one-line description for logs."""
    if isinstance(server, McpServerStdio):
        return f"{server.name}:stdio:{server.command}"
    return f"{server.name}:{server.type}:{server.url}"
