"""
Error taxonomy for the MCP client.

Every error raised by this package derives from MCPError, so a host can
catch the whole family in one place:

    MCPError
    ├── SpawnError           provider process could not be started
    ├── InitializationError  initialize handshake failed, session discarded
    ├── ToolListError        tools/list failed (non-fatal to the session)
    ├── WriteError           stdin closed or broken
    ├── RPCError             provider returned a JSON-RPC error object
    ├── ParseError           inbound line was not a JSON-RPC message
    ├── SessionClosed        session stopped or its process exited
    └── RequestTimeoutError  no response before the request deadline
"""

from __future__ import annotations

from typing import Any


class MCPError(Exception):
    """Base exception for MCP client errors."""


class SpawnError(MCPError):
    """The provider process could not be launched."""


class InitializationError(MCPError):
    """The initialize handshake with a provider failed."""

    def __init__(self, command: str, message: str):
        self.command = command
        self.message = message
        super().__init__(f"Failed to initialize MCP server '{command}': {message}")


class ToolListError(MCPError):
    """The provider's tool list could not be fetched or understood."""


class WriteError(MCPError):
    """A message could not be written to the provider's stdin."""


class RPCError(MCPError):
    """JSON-RPC error returned by the provider."""

    def __init__(self, code: int | None, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


class ParseError(MCPError):
    """An inbound line could not be decoded as a JSON-RPC message."""


class SessionClosed(MCPError):
    """The session ended before the request could complete."""


class RequestTimeoutError(MCPError, TimeoutError):
    """No response arrived before the request deadline."""

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(f"MCP request '{method}' timed out after {timeout}s")
