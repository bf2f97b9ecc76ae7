"""
Transport layer for MCP provider processes.

Implements:
  - JSON-RPC 2.0 message types and the inbound line classifier
  - StdioTransport: newline-delimited JSON-RPC over a child process's
    stdin/stdout pipes, driven by asyncio

The transport only moves lines. Matching responses to requests is the
job of the RequestCorrelator.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Union

from aicode_mcp.errors import ParseError, SpawnError, WriteError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

# StreamReader buffer size. Longer lines are still assembled in full.
READ_LIMIT = 1024 * 1024


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""
    method: str
    params: dict[str, Any] | None
    id: int | str

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
        }
        if self.params is not None:
            message["params"] = self.params
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class JsonRpcNotification:
    """JSON-RPC 2.0 notification (no id, never answered)."""
    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            message["params"] = self.params
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "JsonRpcResponse":
        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            error = {"message": str(error)}
        return cls(id=data.get("id"), result=data.get("result"), error=error)

    @classmethod
    def from_json(cls, data: str) -> "JsonRpcResponse":
        return cls.from_dict(json.loads(data))

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            message["error"] = self.error
        else:
            message["result"] = self.result
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @property
    def is_error(self) -> bool:
        return self.error is not None


JsonRpcMessage = Union[JsonRpcRequest, JsonRpcNotification, JsonRpcResponse]


def parse_message(line: str) -> JsonRpcMessage:
    """
    Classify one inbound line.

    A message with an id and a method is a request from the provider,
    a message with an id otherwise is a response, and a message with a
    method but no id is a notification.

    Raises:
        ParseError: if the line is not JSON or not a JSON-RPC message.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("Message must be a JSON object")

    if "id" in data:
        message_id = data["id"]
        if isinstance(message_id, bool) or not isinstance(message_id, (int, str, type(None))):
            raise ParseError(f"Invalid message id: {message_id!r}")
        if "method" in data:
            return JsonRpcRequest(
                method=data["method"],
                params=data.get("params"),
                id=data["id"],
            )
        return JsonRpcResponse.from_dict(data)

    if "method" in data:
        return JsonRpcNotification(method=data["method"], params=data.get("params"))

    raise ParseError("Message has neither 'id' nor 'method'")


class Transport(ABC):
    """Abstract transport owning one provider connection."""

    command: str

    @abstractmethod
    async def start(self) -> None:
        """Start the transport (e.g., launch subprocess)."""
        ...

    @abstractmethod
    def lines(self) -> AsyncIterator[str]:
        """Yield complete inbound lines until the provider closes its output."""
        ...

    @abstractmethod
    async def write(self, message: dict[str, Any]) -> None:
        """Write one JSON-RPC message."""
        ...

    @abstractmethod
    def kill(self, force: bool = False) -> None:
        """Request termination without waiting for it."""
        ...

    @abstractmethod
    async def wait(self) -> int | None:
        """Wait for the provider to exit and return its exit code."""
        ...

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the transport is active."""
        ...


class StdioTransport(Transport):
    """
    JSON-RPC over stdin/stdout pipes to a subprocess.

    This is MCP's native local transport. The provider runs as a child
    process. We write JSON-RPC messages to its stdin and read messages
    from its stdout. One line = one message. Whatever the provider writes
    to stderr is logged at DEBUG and never parsed.
    """

    def __init__(
        self,
        command: str,
        env: dict[str, str] | None = None,
        read_limit: int = READ_LIMIT,
    ):
        """
        Args:
            command: Shell-style command line that launches the provider.
                     e.g., "npx -y @modelcontextprotocol/server-everything"
            env: Extra environment variables for the subprocess.
            read_limit: StreamReader buffer size for stdout.
        """
        self.command = command
        self.env = env
        self.read_limit = read_limit
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()

    async def start(self) -> None:
        """Launch the provider subprocess."""
        try:
            argv = shlex.split(self.command)
        except ValueError as e:
            raise SpawnError(f"Cannot parse command '{self.command}': {e}") from e
        if not argv:
            raise SpawnError("Empty MCP server command")

        logger.info(f"Starting stdio transport: {self.command}")
        env = {**os.environ, **self.env} if self.env else None
        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=self.read_limit,
            )
        except OSError as e:
            raise SpawnError(f"Cannot start '{self.command}': {e}") from e

        if self._process.stdout is None:
            self.kill(force=True)
            raise SpawnError("Server process stdout is not available")

        if self._process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._pump_stderr(self._process.stderr))

    async def lines(self) -> AsyncIterator[str]:
        """Read newline-delimited lines from the provider's stdout."""
        if self._process is None or self._process.stdout is None:
            return
        reader = self._process.stdout
        buffer = bytearray()

        while True:
            try:
                chunk = await reader.readuntil(b"\n")
            except asyncio.LimitOverrunError as e:
                # No newline within the buffer limit: take what is there and keep going
                buffer += await reader.readexactly(e.consumed)
                continue
            except asyncio.IncompleteReadError as e:
                buffer += e.partial
                if buffer.strip():
                    yield buffer.decode("utf-8", errors="replace").strip()
                return

            buffer += chunk
            line = buffer.decode("utf-8", errors="replace").strip()
            buffer.clear()
            if line:
                yield line

    async def write(self, message: dict[str, Any]) -> None:
        """Append one newline-terminated JSON message to stdin."""
        stdin = self._process.stdin if self._process else None
        if stdin is None or stdin.is_closing():
            raise WriteError(f"stdin of '{self.command}' is closed")

        data = json.dumps(message, separators=(",", ":")) + "\n"
        async with self._write_lock:
            try:
                stdin.write(data.encode("utf-8"))
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError, OSError) as e:
                raise WriteError(f"Failed to write to '{self.command}': {e}") from e

    def kill(self, force: bool = False) -> None:
        """Send SIGTERM (or SIGKILL with force) to the subprocess."""
        if self._process is None or self._process.returncode is not None:
            return
        try:
            if force:
                self._process.kill()
            else:
                self._process.terminate()
        except ProcessLookupError:
            pass

    async def wait(self) -> int | None:
        if self._process is None:
            return None
        code = await self._process.wait()
        if self._stderr_task is not None:
            # stderr hits EOF shortly after exit; don't hang on grandchildren holding it
            try:
                await asyncio.wait_for(self._stderr_task, timeout=1.0)
            except asyncio.TimeoutError:
                self._stderr_task.cancel()
        return code

    @property
    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def _pump_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                raw = await stream.readline()
            except (asyncio.LimitOverrunError, ValueError):
                # Oversized stderr line; skip to the next one
                continue
            if not raw:
                return
            text = raw.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug(f"[{self.command}] stderr: {text}")
