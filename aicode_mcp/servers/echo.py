"""
Echo MCP provider — minimal reference implementation.

Use this as a template for building new providers. It implements a
single tool that echoes back its input, which is all the client's
end-to-end tests need.

Launch:
    python -m aicode_mcp.servers.echo [--tool-name NAME] [--noise]
                                      [--notify] [--fail-tools-list]

Test:
    echo '{"jsonrpc":"2.0","method":"ping","params":{},"id":1}' | python -m aicode_mcp.servers.echo
"""

import argparse
import logging
import sys

from aicode_mcp.server import StdioToolServer, ToolHandler


class EchoTool(ToolHandler):
    name = "echo"
    description = "Echoes input"
    input_schema = {
        "type": "object",
        "properties": {
            "text": {
                "type": "string",
                "description": "The text to echo back",
            },
            "repeat": {
                "type": "integer",
                "minimum": 1,
                "description": "How many times to repeat it",
            },
        },
        "required": ["text"],
    }

    def __init__(self, name: str | None = None):
        if name:
            self.name = name

    def handle(self, arguments: dict) -> str:
        text = arguments.get("text", "")
        return text * int(arguments.get("repeat") or 1)


class EchoServer(StdioToolServer):
    """Echo provider with switches for misbehaving on purpose."""

    def __init__(self, noise: bool = False, notify: bool = False, fail_tools_list: bool = False):
        super().__init__("echo")
        self.noise = noise
        self.send_notifications = notify
        self.fail_tools_list = fail_tools_list

    def dispatch(self, method: str, params: dict):
        if self.noise:
            self.write_line("this line is not json {")
        if method == "tools/list" and self.fail_tools_list:
            raise RuntimeError("tool listing is disabled")
        if method == "tools/call" and self.send_notifications:
            self.notify("notifications/message", {"level": "info", "data": f"calling {params.get('name')}"})
        return super().dispatch(method, params)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Echo MCP provider")
    parser.add_argument("--tool-name", default=None, help="Expose the tool under this name")
    parser.add_argument("--noise", action="store_true", help="Write a non-JSON line before every response")
    parser.add_argument("--notify", action="store_true", help="Send a notification before tools/call responses")
    parser.add_argument("--fail-tools-list", action="store_true", help="Answer tools/list with an error")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(levelname)s: %(message)s")

    server = EchoServer(noise=args.noise, notify=args.notify, fail_tools_list=args.fail_tools_list)
    server.register(EchoTool(args.tool_name))
    server.run()


if __name__ == "__main__":
    main()
