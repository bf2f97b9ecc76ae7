"""
Tool Server Manager — launches and manages MCP provider processes.

The manager is the registry between a host (REPL / chat orchestrator)
and the running provider sessions. Sessions are keyed by their launch
command; there is at most one per distinct command string.

Usage:
    manager = ToolServerManager()

    # Start a provider (no-op if the same command is already running)
    await manager.start_server("npx -y @modelcontextprotocol/server-everything")

    # Flat, namespaced catalog across every provider
    for tool in manager.get_all_tools():
        print(tool.name, tool.description)

    # Call one
    text = await tool.invoke({"message": "hi"})

    # Stop everything
    await manager.stop_all_servers()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from aicode_mcp.catalog import MCPTool, ToolDescriptor, qualify_names, result_to_text
from aicode_mcp.config import ClientConfig
from aicode_mcp.errors import MCPError
from aicode_mcp.schema import schema_to_model
from aicode_mcp.session import ServerSession
from aicode_mcp.transport import StdioTransport, Transport

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[str, str, Any], None]


class ToolServerManager:
    """
    Manages the lifecycle of MCP provider processes.

    Responsibilities:
    - Launch providers as subprocesses and run the handshake
    - Drop sessions whose process exits
    - Aggregate every session's tools into one catalog for the host
    - Graceful shutdown
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport_factory: Callable[[str], Transport] | None = None,
    ):
        self.config = config or ClientConfig()
        self._transport_factory = transport_factory or self._stdio_transport
        self._sessions: dict[str, ServerSession] = {}
        self._starting: dict[str, asyncio.Future] = {}
        self._notification_handlers: list[NotificationCallback] = []

    async def start_server(self, command: str) -> None:
        """
        Start a provider and discover its tools.

        Idempotent per command string. Concurrent calls for the same
        command share one launch.

        Raises:
            InitializationError: the process could not be started or the
                handshake failed. Nothing is registered.
        """
        if command in self._sessions:
            logger.info(f"MCP server already running: {command}")
            return

        launch = self._starting.get(command)
        if launch is None:
            launch = asyncio.ensure_future(self._launch(command))
            self._starting[command] = launch
            launch.add_done_callback(lambda _: self._starting.pop(command, None))
        await asyncio.shield(launch)

    async def start_servers(self, commands: list[str]) -> dict[str, MCPError | None]:
        """Start several providers. Returns {command: error or None}."""
        results: dict[str, MCPError | None] = {}
        for command in commands:
            try:
                await self.start_server(command)
                results[command] = None
            except MCPError as e:
                logger.error(f"Failed to start {command}: {e}")
                results[command] = e
        return results

    async def stop_server(self, command: str) -> None:
        """Stop a provider. No-op if it isn't running."""
        session = self._sessions.pop(command, None)
        if session is None:
            return
        await session.stop()
        logger.info(f"Stopped {command}")

    async def stop_all_servers(self) -> None:
        """Stop all running providers; one failure doesn't block the rest."""
        commands = list(self._sessions)
        results = await asyncio.gather(
            *(self.stop_server(command) for command in commands),
            return_exceptions=True,
        )
        for command, result in zip(commands, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to stop {command}: {result}")

    def get_active_servers(self) -> list[str]:
        """Commands of all registered sessions (snapshot)."""
        return list(self._sessions)

    def is_running(self, command: str) -> bool:
        session = self._sessions.get(command)
        return session is not None and session.is_ready

    def list_tools(self, command: str) -> list[MCPTool]:
        """List discovered tools for a server."""
        session = self._sessions.get(command)
        return list(session.tools) if session else []

    def get_session(self, command: str) -> ServerSession | None:
        return self._sessions.get(command)

    def add_notification_handler(self, handler: NotificationCallback) -> None:
        """Register handler(command, method, params) for provider notifications."""
        self._notification_handlers.append(handler)

    def get_all_tools(self) -> list[ToolDescriptor]:
        """
        Build the host-facing catalog.

        One descriptor per (session, tool). Names are prefixed and, where
        two providers share a tool name, disambiguated per provider.
        """
        entries: list[tuple[ServerSession, MCPTool]] = [
            (session, tool)
            for session in list(self._sessions.values())
            for tool in session.tools
        ]
        names = qualify_names(
            [(session.command, tool.name) for session, tool in entries],
            prefix=self.config.tool_prefix,
        )

        descriptors = []
        for (session, tool), name in zip(entries, names):
            descriptors.append(ToolDescriptor(
                name=name,
                description=tool.description,
                parameters=schema_to_model(tool.input_schema, name),
                invoke=self._make_invoker(session, tool),
                server=session.command,
                tool_name=tool.name,
                input_schema=tool.input_schema,
            ))
        return descriptors

    async def __aenter__(self) -> "ToolServerManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop_all_servers()

    async def _launch(self, command: str) -> None:
        session = ServerSession(
            command,
            transport=self._transport_factory(command),
            config=self.config,
            on_close=self._on_session_closed,
            on_notification=self._dispatch_notification,
        )
        await session.start()
        self._sessions[command] = session
        logger.info(f"Started {command}: tools={[t.name for t in session.tools]}")

    def _make_invoker(self, session: ServerSession, tool: MCPTool):
        async def invoke(params: dict[str, Any]) -> str:
            logger.info(f"MCP tool call started: {tool.name} on {session.command}")
            logger.debug(f"MCP tool call params: {params}")
            try:
                result = await session.call_tool(tool.name, params)
            except MCPError as e:
                logger.error(f"MCP tool call failed: {tool.name} on {session.command}: {e}")
                raise
            text = result_to_text(result)
            logger.info(f"MCP tool call completed: {tool.name} ({len(text)} chars)")
            return text

        return invoke

    def _on_session_closed(self, session: ServerSession) -> None:
        if self._sessions.get(session.command) is session:
            del self._sessions[session.command]
            logger.info(f"Removed exited MCP server: {session.command}")

    def _dispatch_notification(self, command: str, method: str, params: Any) -> None:
        for handler in list(self._notification_handlers):
            try:
                handler(command, method, params)
            except Exception:
                logger.exception(f"Notification handler failed for {method} from {command}")

    def _stdio_transport(self, command: str) -> Transport:
        return StdioTransport(command, env=self.config.env)
