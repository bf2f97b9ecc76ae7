"""
One provider process and its protocol state.

Lifecycle:
    SPAWNED → INITIALIZING → READY → STOPPED
                    │           │
                    └───────────┴──→ FAILED   (handshake error or process exit)

The session drives the handshake (initialize, notifications/initialized,
tools/list) and runs a reader task that feeds stdout lines into the
correlator. When the process goes away every waiting caller is rejected
with SessionClosed and the on_close callback fires.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

from aicode_mcp.catalog import MCPTool
from aicode_mcp.config import ClientConfig
from aicode_mcp.correlator import RequestCorrelator
from aicode_mcp.errors import InitializationError, MCPError, SessionClosed, ToolListError
from aicode_mcp.transport import StdioTransport, Transport

logger = logging.getLogger(__name__)

TOOLS_CHANGED = "notifications/tools/list_changed"


class SessionState(Enum):
    SPAWNED = "spawned"
    INITIALIZING = "initializing"
    READY = "ready"
    STOPPED = "stopped"
    FAILED = "failed"


class ServerSession:
    """
    A single MCP provider: transport + correlator + cached tools.

    Usage:
        session = ServerSession("python -m aicode_mcp.servers.echo")
        await session.start()
        result = await session.call_tool("echo", {"text": "hi"})
        await session.stop()
    """

    def __init__(
        self,
        command: str,
        transport: Transport | None = None,
        config: ClientConfig | None = None,
        on_close: Callable[["ServerSession"], None] | None = None,
        on_notification: Callable[[str, str, Any], None] | None = None,
    ):
        self.command = command
        self.config = config or ClientConfig()
        self.transport = transport or StdioTransport(command, env=self.config.env)
        self.correlator = RequestCorrelator(
            self.transport,
            label=command,
            default_timeout=self.config.request_timeout,
        )
        self.correlator.add_notification_handler(self._on_notification)
        self.state = SessionState.SPAWNED
        self.tools: list[MCPTool] = []
        self.capabilities: dict[str, Any] = {}
        self.server_info: dict[str, Any] = {}
        self.exit_code: int | None = None
        self._on_close = on_close
        self._on_notification_cb = on_notification
        self._reader: asyncio.Task | None = None
        self._refresh: asyncio.Task | None = None

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    async def start(self) -> None:
        """
        Launch the provider and complete the handshake.

        Raises:
            InitializationError: spawn, initialize, or an early exit failed.
                The process is killed and the session is FAILED.
        """
        self.state = SessionState.INITIALIZING
        logger.info(f"Starting MCP server: {self.command}")

        try:
            await self.transport.start()
            self._reader = asyncio.create_task(self._read_loop())

            result = await self.correlator.send("initialize", {
                "protocolVersion": self.config.protocol_version,
                "capabilities": {},
                "clientInfo": self.config.client_info(),
            })
            result = result if isinstance(result, dict) else {}
            self.capabilities = result.get("capabilities") or {}
            self.server_info = result.get("serverInfo") or {}
            logger.info(f"MCP server initialized: {self.command} {self.server_info}")

            await self.correlator.notify("notifications/initialized")
        except MCPError as e:
            await self._abort()
            raise InitializationError(self.command, str(e)) from e

        await self.refresh_tools()

        if self.state is not SessionState.INITIALIZING:
            # Exited while listing tools
            raise InitializationError(self.command, f"server exited with code {self.exit_code}")
        self.state = SessionState.READY

    async def list_tools(self) -> list[MCPTool]:
        """
        Fetch the provider's tools.

        Raises:
            ToolListError: the request failed or returned a malformed list.
        """
        try:
            result = await self.correlator.send("tools/list")
        except MCPError as e:
            raise ToolListError(f"tools/list failed for {self.command}: {e}") from e

        raw_tools = result.get("tools") if isinstance(result, dict) else None
        if raw_tools is None:
            return []
        if not isinstance(raw_tools, list):
            raise ToolListError(f"tools/list from {self.command} returned {type(raw_tools).__name__}")

        tools = []
        for raw in raw_tools:
            if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
                logger.warning(f"Skipping malformed tool from {self.command}: {raw!r}")
                continue
            tools.append(MCPTool.from_dict(raw))
        return tools

    async def refresh_tools(self) -> list[MCPTool]:
        """Re-fetch tools; on failure keep the current list (empty before the first success)."""
        try:
            self.tools = await self.list_tools()
        except ToolListError as e:
            logger.error(f"Failed to list MCP tools, keeping {len(self.tools)} known: {e}")
        else:
            logger.info(f"MCP tools loaded from {self.command}: {[t.name for t in self.tools]}")
            logger.debug(f"Full MCP tool schemas: {[(t.name, t.input_schema) for t in self.tools]}")
        return self.tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Send tools/call and return the raw result."""
        if not self.is_ready:
            raise SessionClosed(f"MCP server '{self.command}' is {self.state.value}")
        return await self.correlator.send("tools/call", {"name": name, "arguments": arguments or {}})

    async def stop(self) -> None:
        """Terminate the provider. No shutdown handshake is performed."""
        if self.state in (SessionState.STOPPED, SessionState.FAILED):
            return
        logger.info(f"Stopping MCP server: {self.command}")
        self.state = SessionState.STOPPED
        self.correlator.fail_all(SessionClosed(f"MCP server '{self.command}' was stopped"))
        await self._terminate()

    async def _abort(self) -> None:
        self.state = SessionState.FAILED
        self.correlator.fail_all(SessionClosed(f"MCP server '{self.command}' failed to initialize"))
        await self._terminate()

    async def _terminate(self) -> None:
        self.transport.kill()
        try:
            await asyncio.wait_for(self.transport.wait(), timeout=self.config.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"MCP server did not exit in {self.config.shutdown_timeout}s, killing: {self.command}")
            self.transport.kill(force=True)
            await self.transport.wait()

        tasks = [t for t in (self._reader, self._refresh) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _read_loop(self) -> None:
        try:
            async for line in self.transport.lines():
                try:
                    self.correlator.on_line(line)
                except Exception:
                    logger.exception(f"Failed to handle MCP message from {self.command}")
            self.exit_code = await self.transport.wait()
        except Exception:
            logger.exception(f"Reader for MCP server {self.command} failed")
        finally:
            self._handle_exit()

    def _handle_exit(self) -> None:
        if self.state in (SessionState.STOPPED, SessionState.FAILED):
            return
        if self.transport.is_alive:
            # Reader failed while the process is still running
            self.transport.kill(force=True)
        logger.info(f"MCP server exited (code {self.exit_code}): {self.command}")
        self.state = SessionState.FAILED
        self.correlator.fail_all(
            SessionClosed(f"MCP server '{self.command}' exited with code {self.exit_code}")
        )
        if self._on_close is not None:
            self._on_close(self)

    def _on_notification(self, method: str, params: Any) -> None:
        if method == TOOLS_CHANGED and self.is_ready:
            if self._refresh is None or self._refresh.done():
                self._refresh = asyncio.ensure_future(self.refresh_tools())
        if self._on_notification_cb is not None:
            self._on_notification_cb(self.command, method, params)
