"""Test doubles: an in-memory transport and a scripted MCP provider."""

import asyncio
import json
import shlex
import sys
import time

from aicode_mcp.errors import SpawnError, WriteError
from aicode_mcp.transport import Transport


ECHO_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


class FakeTransport(Transport):
    """Transport double: records writes and replays scripted replies."""

    def __init__(self, command="fake-server", responder=None, fail_start=False):
        self.command = command
        self.responder = responder
        self.fail_start = fail_start
        self.sent = []
        self.started = False
        self.killed = False
        self.exit_code = None
        self._alive = False
        self._inbox = asyncio.Queue()
        self._exited = asyncio.Event()

    async def start(self):
        if self.fail_start:
            raise SpawnError(f"Cannot start '{self.command}'")
        self.started = True
        self._alive = True

    async def lines(self):
        while True:
            line = await self._inbox.get()
            if line is None:
                return
            yield line

    async def write(self, message):
        if not self._alive:
            raise WriteError(f"stdin of '{self.command}' is closed")
        self.sent.append(message)
        if self.responder is not None:
            for reply in self.responder(self, message) or []:
                self.feed(reply)

    def feed(self, message):
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def exit(self, code=0):
        if not self._alive:
            return
        self._alive = False
        self.exit_code = code
        self._inbox.put_nowait(None)
        self._exited.set()

    def kill(self, force=False):
        self.killed = True
        self.exit(-9 if force else -15)

    async def wait(self):
        if not self.started:
            return None
        await self._exited.wait()
        return self.exit_code

    @property
    def is_alive(self):
        return self._alive

    def requests(self, method):
        return [m for m in self.sent if m.get("method") == method]


class MCPResponder:
    """Scripted provider behaviour for FakeTransport."""

    def __init__(self, tools=None, fail_initialize=False, fail_tools_list=False,
                 exit_on_initialize=False, tools_result=None, call_result=None, hold_calls=False):
        self.tools = tools if tools is not None else [
            {"name": "echo", "description": "Echoes input", "inputSchema": ECHO_SCHEMA},
        ]
        self.fail_initialize = fail_initialize
        self.fail_tools_list = fail_tools_list
        self.exit_on_initialize = exit_on_initialize
        self.tools_result = tools_result
        self.call_result = call_result
        self.hold_calls = hold_calls

    def __call__(self, transport, message):
        method = message.get("method")
        if "id" not in message:
            return []
        request_id = message["id"]

        if method == "initialize":
            if self.exit_on_initialize:
                transport.exit(1)
                return []
            if self.fail_initialize:
                return [_error(request_id, -32603, "initialize refused")]
            return [_result(request_id, {
                "protocolVersion": "2024-11-05",
                "capabilities": {"tools": {"listChanged": True}},
                "serverInfo": {"name": "fake", "version": "0.0.1"},
            })]

        if method == "tools/list":
            if self.fail_tools_list:
                return [_error(request_id, -32603, "no tools for you")]
            if self.tools_result is not None:
                return [_result(request_id, self.tools_result)]
            return [_result(request_id, {"tools": self.tools})]

        if method == "tools/call":
            if self.hold_calls:
                return []
            if self.call_result is not None:
                return [_result(request_id, self.call_result)]
            arguments = message["params"]["arguments"]
            return [_result(request_id, {"content": [{"type": "text", "text": arguments.get("text", "")}]})]

        return [_error(request_id, -32601, f"Method not found: '{method}'")]


def _result(request_id, result):
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id, code, message):
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


async def wait_until(predicate, timeout=5.0):
    """Poll predicate until it is true or fail after timeout seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def echo_command(*args):
    """Launch command for the reference echo provider."""
    return " ".join([shlex.quote(sys.executable), "-m", "aicode_mcp.servers.echo", *args])


def python_command(script):
    """Launch command running an inline Python script."""
    return shlex.join([sys.executable, "-c", script])


