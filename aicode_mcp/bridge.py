"""
Bridge between the MCP tool catalog and LangChain.

This module converts catalog entries from a ToolServerManager into
LangChain StructuredTools that a chat orchestrator can bind to a model.

Usage:
    from aicode_mcp.bridge import mcp_to_langchain_tools

    tools = mcp_to_langchain_tools(manager)
    llm_with_tools = llm.bind_tools(tools)
"""

from __future__ import annotations

from typing import Any

from langchain_core.tools import StructuredTool, ToolException
from pydantic import ValidationError

from aicode_mcp.catalog import ToolDescriptor
from aicode_mcp.errors import MCPError
from aicode_mcp.manager import ToolServerManager


def mcp_to_langchain_tool(
    descriptor: ToolDescriptor,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that wraps an MCP tool call.

    The model sees the provider's own input schema. When the agent
    invokes the tool, the arguments are validated against the translated
    schema and forwarded to the provider via tools/call.

    Args:
        descriptor: Catalog entry from ToolServerManager.get_all_tools()
        description_override: Optional override for the tool description

    Returns:
        A LangChain StructuredTool that proxies calls to the MCP server.
    """
    description = description_override or descriptor.description or f"MCP tool: {descriptor.tool_name}"

    async def _call_mcp(**kwargs: Any) -> str:
        """Proxy call to MCP tool server."""
        try:
            arguments = descriptor.validate(kwargs)
        except ValidationError as e:
            raise ToolException(f"Invalid arguments for {descriptor.name}: {e}") from e
        try:
            return await descriptor.invoke(arguments)
        except MCPError as e:
            raise ToolException(f"Error calling {descriptor.tool_name}: {e}") from e

    return StructuredTool.from_function(
        coroutine=_call_mcp,
        name=descriptor.name,
        description=description,
        args_schema=_args_schema(descriptor),
        infer_schema=False,
        handle_tool_error=True,
    )


def mcp_to_langchain_tools(manager: ToolServerManager) -> list[StructuredTool]:
    """One StructuredTool per tool across all running MCP servers."""
    return [mcp_to_langchain_tool(descriptor) for descriptor in manager.get_all_tools()]


def _args_schema(descriptor: ToolDescriptor) -> dict[str, Any]:
    schema = dict(descriptor.input_schema)
    if schema.get("type") != "object":
        return {"type": "object", "properties": {}}
    schema.setdefault("properties", {})
    return schema
