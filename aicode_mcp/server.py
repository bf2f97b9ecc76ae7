"""
Minimal MCP provider base class (stdio).

A provider reads one JSON-RPC message per line from stdin and writes one
response per request to stdout. It answers initialize, ping, tools/list
and tools/call. The client's end-to-end tests run it as a real child
process. A new provider looks like this:

    from aicode_mcp.server import StdioToolServer, ToolHandler

    class WordCount(ToolHandler):
        name = "word_count"
        description = "Counts words in a text"
        input_schema = {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

        def handle(self, arguments: dict) -> int:
            return len(arguments["text"].split())

    if __name__ == "__main__":
        server = StdioToolServer("word-count")
        server.register(WordCount())
        server.run()
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, TextIO

from aicode_mcp.config import PROTOCOL_VERSION

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ToolHandler(ABC):
    """One tool a provider offers. The server owns the wire protocol."""

    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    def handle(self, arguments: dict[str, Any]) -> Any:
        """
        Run the tool.

        A string result becomes one text block; anything else is
        JSON-encoded into one text block.
        """
        ...

    def get_schema(self) -> dict[str, Any]:
        """tools/list entry for this tool."""
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


class StdioToolServer:
    """
    MCP provider over stdin/stdout.

    Requests are routed through a method table; LookupError maps to
    -32601, ValueError to -32602 and anything else to -32603.
    Messages without an id are notifications and get no reply.
    """

    def __init__(
        self,
        name: str = "aicode-reference-server",
        version: str = "0.1.0",
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ):
        self.name = name
        self.version = version
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._tools: dict[str, ToolHandler] = {}
        self._methods: dict[str, Callable[[dict], Any]] = {
            "initialize": self._initialize,
            "ping": lambda params: {},
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def register(self, handler: ToolHandler) -> None:
        if not handler.name:
            raise ValueError(f"{handler.__class__.__name__} must define a tool name")
        self._tools[handler.name] = handler
        logger.info(f"Tool registered: {handler.name}")

    def run(self) -> None:
        """Serve until stdin reaches EOF."""
        logger.info(f"{self.name} serving tools: {sorted(self._tools)}")
        for raw in self._stdin:
            raw = raw.strip()
            if raw:
                self._handle_line(raw)
        logger.info(f"{self.name} stdin closed, exiting")

    def dispatch(self, method: str, params: dict) -> Any:
        """Return the result for one request or raise to produce an error reply."""
        handler = self._methods.get(method)
        if handler is None:
            raise LookupError(f"Method not found: '{method}'")
        return handler(params)

    def write_line(self, text: str) -> None:
        self._stdout.write(text + "\n")
        self._stdout.flush()

    def notify(self, method: str, params: dict | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        self.write_line(json.dumps(message))

    def _handle_line(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            self._reply(None, error=(PARSE_ERROR, f"Parse error: {e}"))
            return

        if "id" not in message:
            logger.debug(f"Ignoring notification {message.get('method')}")
            return

        try:
            result = self.dispatch(message.get("method", ""), message.get("params") or {})
        except LookupError as e:
            self._reply(message["id"], error=(METHOD_NOT_FOUND, str(e)))
        except ValueError as e:
            self._reply(message["id"], error=(INVALID_PARAMS, str(e)))
        except Exception as e:
            logger.exception(f"Request {message.get('method')} failed")
            self._reply(message["id"], error=(INTERNAL_ERROR, str(e)))
        else:
            self._reply(message["id"], result=result)

    def _initialize(self, params: dict) -> dict:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.name, "version": self.version},
        }

    def _list_tools(self, params: dict) -> dict:
        return {"tools": [tool.get_schema() for tool in self._tools.values()]}

    def _call_tool(self, params: dict) -> dict:
        name = params.get("name", "")
        tool = self._tools.get(name)
        if tool is None:
            raise ValueError(f"Unknown tool: '{name}'. Known tools: {sorted(self._tools)}")
        output = tool.handle(params.get("arguments") or {})
        text = output if isinstance(output, str) else json.dumps(output)
        return {"content": [{"type": "text", "text": text}]}

    def _reply(self, request_id: Any, result: Any = None, error: tuple[int, str] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            code, text = error
            message["error"] = {"code": code, "message": text}
        else:
            message["result"] = result
        self.write_line(json.dumps(message))
