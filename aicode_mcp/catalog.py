"""
Tool catalog types.

MCPTool is a tool exactly as a provider advertised it. ToolDescriptor is
the host-facing form: a catalog-unique name, a pydantic argument model,
and an async invoke function bound to the owning session.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from aicode_mcp.schema import validate_arguments

logger = logging.getLogger(__name__)

MAX_TOOL_NAME_LENGTH = 64


@dataclass(frozen=True)
class MCPTool:
    """A tool as returned by tools/list."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MCPTool":
        schema = data.get("inputSchema")
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            input_schema=schema if isinstance(schema, dict) else {},
        )


@dataclass
class ToolDescriptor:
    """A ready-to-call catalog entry handed to the host."""
    name: str
    description: str
    parameters: type[BaseModel]
    invoke: Callable[[dict[str, Any]], Awaitable[str]]
    server: str
    tool_name: str
    input_schema: dict[str, Any] = field(default_factory=dict)

    def validate(self, params: dict[str, Any] | None) -> dict[str, Any]:
        """Validate arguments against the tool's schema (host-side)."""
        return validate_arguments(self.parameters, params)

    async def __call__(self, params: dict[str, Any]) -> str:
        return await self.invoke(params)


def server_digest(command: str) -> str:
    """Short stable tag for a launch command."""
    return hashlib.sha1(command.encode("utf-8")).hexdigest()[:6]


def qualify_names(entries: list[tuple[str, str]], prefix: str = "mcp_") -> list[str]:
    """
    Build catalog-unique names for (command, tool_name) pairs.

    A name that is unique after sanitizing and truncation becomes
    ``prefix + name``. Names that clash get the server's digest, e.g.
    ``mcp_search_1a2b3c``; if that still clashes (two tools of one server
    that sanitize alike) the digest covers the tool name too. A numeric
    suffix settles anything left.
    """
    bases = [f"{prefix}{_sanitize(tool_name)}" for _, tool_name in entries]
    names = [_fit(base) for base in bases]

    clashes = Counter(names)
    for i, (command, _) in enumerate(entries):
        if clashes[names[i]] > 1:
            names[i] = _fit(bases[i], server_digest(command))

    clashes = Counter(names)
    for i, (command, tool_name) in enumerate(entries):
        if clashes[names[i]] > 1:
            names[i] = _fit(bases[i], server_digest(f"{command}\0{tool_name}"))

    seen: set[str] = set()
    for i, name in enumerate(names):
        candidate, counter = name, 2
        while candidate in seen:
            candidate = _fit(name, str(counter))
            counter += 1
        seen.add(candidate)
        names[i] = candidate
    return names


def result_to_text(result: Any) -> str:
    """
    Flatten a tools/call result into the string handed back to the model.

    Text blocks of a ``content`` list are joined with newlines; other
    block types are ignored. Any other result is returned as JSON.
    """
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        return "\n".join(
            str(block.get("text", ""))
            for block in result["content"]
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return json.dumps(result)


def _sanitize(tool_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", tool_name) or "tool"


def _fit(base: str, tag: str = "") -> str:
    """Truncate base so that base + "_" + tag fits the name limit."""
    if not tag:
        return base[:MAX_TOOL_NAME_LENGTH]
    suffix = f"_{tag}"
    return base[: MAX_TOOL_NAME_LENGTH - len(suffix)] + suffix
