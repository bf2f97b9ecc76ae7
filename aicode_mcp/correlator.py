"""
Request correlation for one MCP session.

Requests sent concurrently share one stdin stream and may be answered in
any order, so each outbound request gets a fresh numeric id and a future.
Inbound responses resolve the future with the matching id; everything is
driven from the event loop, so the pending map needs no locking.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from aicode_mcp.errors import MCPError, ParseError, RPCError, RequestTimeoutError, SessionClosed
from aicode_mcp.transport import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Transport,
    parse_message,
)

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[str, Any], None]

METHOD_NOT_FOUND = -32601

# Sentinel for "use the correlator's default timeout"
_DEFAULT = object()


class RequestCorrelator:
    """
    Maps asynchronous JSON-RPC responses onto awaiting callers.

    Usage:
        correlator = RequestCorrelator(transport, label="my-server", default_timeout=30)
        result = await correlator.send("tools/list")

        # The session's reader loop feeds every stdout line in:
        correlator.on_line(line)
    """

    def __init__(
        self,
        transport: Transport,
        label: str = "",
        default_timeout: float | None = None,
    ):
        self.transport = transport
        self.label = label or transport.command
        self.default_timeout = default_timeout
        self._next_id = 1
        self._pending: dict[int | str, asyncio.Future] = {}
        self._notification_handlers: list[NotificationHandler] = []
        self._closed: MCPError | None = None
        self._replies: set[asyncio.Task] = set()

    def next_id(self) -> int:
        """Return the next request id. Ids start at 1 and are never reused."""
        request_id = self._next_id
        self._next_id += 1
        return request_id

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed is not None

    def add_notification_handler(self, handler: NotificationHandler) -> None:
        """Register handler(method, params) for provider notifications."""
        self._notification_handlers.append(handler)

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: Any = _DEFAULT,
    ) -> Any:
        """
        Send a request and wait for its response.

        Args:
            method: JSON-RPC method name
            params: Request params
            timeout: Seconds to wait; None waits forever. Defaults to
                     the correlator's default_timeout.

        Returns:
            The response's ``result``.

        Raises:
            RPCError: the provider answered with an error object
            RequestTimeoutError: no response before the deadline
            WriteError: the request could not be written
            SessionClosed: the session ended first
        """
        if self._closed is not None:
            raise self._closed
        if timeout is _DEFAULT:
            timeout = self.default_timeout

        request = JsonRpcRequest(method=method, params=params, id=self.next_id())
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future

        logger.info(f"Sending MCP request #{request.id} {method} to {self.label}")
        logger.debug(f"MCP request #{request.id} params: {params}")

        try:
            try:
                await self.transport.write(request.to_dict())
            except MCPError:
                if future.done() and not future.cancelled():
                    future.exception()  # rejected by fail_all while writing
                raise
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning(f"MCP request #{request.id} {method} to {self.label} timed out")
            raise RequestTimeoutError(method, timeout) from None
        finally:
            # A late response for this id is now unknown and will be dropped
            self._pending.pop(request.id, None)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification. No response is expected."""
        if self._closed is not None:
            raise self._closed
        notification = JsonRpcNotification(method=method, params=params)
        logger.debug(f"Sending MCP notification {method} to {self.label}")
        await self.transport.write(notification.to_dict())

    def on_line(self, line: str) -> None:
        """Dispatch one inbound line. Malformed input is logged and dropped."""
        try:
            message = parse_message(line)
        except ParseError as e:
            logger.error(f"Failed to parse MCP message from {self.label}: {e} (line: {line[:200]!r})")
            return

        if isinstance(message, JsonRpcResponse):
            self._handle_response(message)
        elif isinstance(message, JsonRpcNotification):
            self._handle_notification(message)
        else:
            self._handle_request(message)

    def fail_all(self, exc: MCPError) -> None:
        """Reject every pending request with exc and refuse new ones."""
        if self._closed is None:
            self._closed = exc
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)
        if pending:
            logger.info(f"Rejected {len(pending)} pending MCP request(s) for {self.label}: {exc}")

    def _handle_response(self, response: JsonRpcResponse) -> None:
        future = self._pending.pop(response.id, None)
        if future is None:
            logger.warning(f"Dropping MCP response with unknown id {response.id!r} from {self.label}")
            return
        if future.done():
            return

        if response.is_error:
            error = response.error or {}
            logger.info(f"MCP request #{response.id} failed: {error}")
            future.set_exception(RPCError(
                code=error.get("code"),
                message=str(error.get("message", "Unknown error")),
                data=error.get("data"),
            ))
        else:
            logger.info(f"MCP request #{response.id} succeeded")
            logger.debug(f"MCP response #{response.id} result: {response.result}")
            future.set_result(response.result)

    def _handle_notification(self, notification: JsonRpcNotification) -> None:
        logger.debug(f"MCP notification from {self.label}: {notification.method} {notification.params}")
        for handler in list(self._notification_handlers):
            try:
                handler(notification.method, notification.params)
            except Exception:
                logger.exception(f"Notification handler failed for {notification.method}")

    def _handle_request(self, request: JsonRpcRequest) -> None:
        # Providers may ping the client; nothing else is supported
        if request.method == "ping":
            reply = JsonRpcResponse(id=request.id, result={})
        else:
            logger.warning(f"Unsupported request {request.method!r} from {self.label}")
            reply = JsonRpcResponse(
                id=request.id,
                error={"code": METHOD_NOT_FOUND, "message": f"Method not found: {request.method}"},
            )
        task = asyncio.ensure_future(self._reply(reply))
        self._replies.add(task)
        task.add_done_callback(self._replies.discard)

    async def _reply(self, reply: JsonRpcResponse) -> None:
        try:
            await self.transport.write(reply.to_dict())
        except MCPError as e:
            logger.warning(f"Could not answer request #{reply.id} from {self.label}: {e}")
