"""
aicode MCP client — stdio-based tool providers for the aicode chat host.

Architecture:
    ┌──────────────┐     stdio      ┌──────────────┐
    │  aicode host │ ──────────── │  MCP provider │
    │ (chat / REPL)│  JSON-RPC    │  (subprocess) │
    └──────────────┘     pipes     └──────────────┘

Each provider is a standalone process that communicates via
stdin/stdout using newline-delimited JSON-RPC 2.0 messages (MCP).

StdioTransport owns the process, RequestCorrelator matches responses
to requests by id, and ServerSession runs the initialize/tools/list
handshake. ToolServerManager keeps one session per launch command and
exposes every provider's tools as one namespaced catalog, with argument
models translated from each tool's JSON schema.
"""

from aicode_mcp.catalog import MCPTool, ToolDescriptor
from aicode_mcp.config import ClientConfig, Settings, parse_configuration
from aicode_mcp.errors import (
    InitializationError,
    MCPError,
    ParseError,
    RequestTimeoutError,
    RPCError,
    SessionClosed,
    SpawnError,
    ToolListError,
    WriteError,
)
from aicode_mcp.manager import ToolServerManager
from aicode_mcp.schema import SchemaKind, schema_to_model, schema_to_type
from aicode_mcp.session import ServerSession, SessionState

__version__ = "0.1.0"


# Bridge imports langchain lazily so the client loads without it
def mcp_to_langchain_tool(*args, **kwargs):
    from aicode_mcp.bridge import mcp_to_langchain_tool as _impl
    return _impl(*args, **kwargs)


def mcp_to_langchain_tools(*args, **kwargs):
    from aicode_mcp.bridge import mcp_to_langchain_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "ClientConfig",
    "Settings",
    "parse_configuration",
    "MCPTool",
    "ToolDescriptor",
    "ToolServerManager",
    "ServerSession",
    "SessionState",
    "SchemaKind",
    "schema_to_model",
    "schema_to_type",
    "MCPError",
    "SpawnError",
    "InitializationError",
    "ToolListError",
    "WriteError",
    "RPCError",
    "ParseError",
    "SessionClosed",
    "RequestTimeoutError",
    "mcp_to_langchain_tool",
    "mcp_to_langchain_tools",
]
