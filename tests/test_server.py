"""Tests for the reference provider (aicode_mcp.server, aicode_mcp.servers.echo)."""

import io
import json

import pytest

from aicode_mcp.server import StdioToolServer, ToolHandler
from aicode_mcp.servers.echo import EchoServer, EchoTool


def run_server(server_cls=StdioToolServer, messages=(), handlers=(), **kwargs):
    stdin = io.StringIO("".join(
        (m if isinstance(m, str) else json.dumps(m)) + "\n" for m in messages
    ))
    stdout = io.StringIO()
    server = server_cls(**kwargs)
    server._stdin = stdin
    server._stdout = stdout
    for handler in handlers:
        server.register(handler)
    server.run()
    return stdout.getvalue().splitlines()


def request(request_id, method, params=None):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


class TestStdioToolServer:
    def test_initialize_and_list(self):
        lines = run_server(
            messages=[request(1, "initialize", {}), {"jsonrpc": "2.0", "method": "notifications/initialized"},
                      request(2, "tools/list")],
            handlers=[EchoTool()],
        )
        assert len(lines) == 2
        init = json.loads(lines[0])
        assert init["id"] == 1
        assert init["result"]["protocolVersion"] == "2024-11-05"
        tools = json.loads(lines[1])["result"]["tools"]
        assert [t["name"] for t in tools] == ["echo"]
        assert tools[0]["inputSchema"]["required"] == ["text"]

    def test_call(self):
        lines = run_server(
            messages=[request(1, "tools/call", {"name": "echo", "arguments": {"text": "ab", "repeat": 3}})],
            handlers=[EchoTool()],
        )
        assert json.loads(lines[0])["result"] == {"content": [{"type": "text", "text": "ababab"}]}

    def test_non_string_output_is_json(self):
        class Adder(ToolHandler):
            name = "add"

            def handle(self, arguments):
                return {"sum": arguments["a"] + arguments["b"]}

        lines = run_server(
            messages=[request(1, "tools/call", {"name": "add", "arguments": {"a": 1, "b": 2}})],
            handlers=[Adder()],
        )
        assert json.loads(lines[0])["result"]["content"][0]["text"] == '{"sum": 3}'

    @pytest.mark.parametrize("message,code", [
        (request(1, "resources/list"), -32601),
        (request(1, "tools/call", {"name": "nope"}), -32602),
        ("not json", -32700),
    ])
    def test_errors(self, message, code):
        lines = run_server(messages=[message], handlers=[EchoTool()])
        assert json.loads(lines[0])["error"]["code"] == code

    def test_handler_failure_is_internal_error(self):
        class Broken(ToolHandler):
            name = "broken"

            def handle(self, arguments):
                raise RuntimeError("kaput")

        lines = run_server(messages=[request(1, "tools/call", {"name": "broken"})], handlers=[Broken()])
        error = json.loads(lines[0])["error"]
        assert error == {"code": -32603, "message": "kaput"}

    def test_unnamed_handler_is_rejected(self):
        class Nameless(ToolHandler):
            def handle(self, arguments):
                return ""

        with pytest.raises(ValueError):
            StdioToolServer().register(Nameless())


class TestEchoServer:
    def test_renamed_tool(self):
        lines = run_server(messages=[request(1, "tools/list")], handlers=[EchoTool("search")])
        assert json.loads(lines[0])["result"]["tools"][0]["name"] == "search"

    def test_noise(self):
        lines = run_server(EchoServer, messages=[request(1, "ping")], handlers=[EchoTool()], noise=True)
        assert lines[0] == "this line is not json {"
        assert json.loads(lines[1]) == {"jsonrpc": "2.0", "id": 1, "result": {}}

    def test_notify_before_call(self):
        lines = run_server(
            EchoServer,
            messages=[request(1, "tools/call", {"name": "echo", "arguments": {"text": "x"}})],
            handlers=[EchoTool()],
            notify=True,
        )
        assert json.loads(lines[0])["method"] == "notifications/message"
        assert json.loads(lines[1])["id"] == 1

    def test_fail_tools_list(self):
        lines = run_server(EchoServer, messages=[request(1, "tools/list")], handlers=[EchoTool()],
                           fail_tools_list=True)
        assert json.loads(lines[0])["error"]["code"] == -32603
