"""Tool executor registry.

Adding a tool: define it in :mod:`.definitions`, implement a :class:`BaseTool`
subclass, then register the class in ``_TOOLS`` below.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .base import BaseTool, ToolResult
from .definitions import TOOL_DEFINITIONS, get_enabled_tools, get_tool_by_id, resolve_tools
from .web_search import WebSearchTool

logger = logging.getLogger(__name__)

_TOOLS: dict[str, type[BaseTool]] = {
    "web_search": WebSearchTool,
}


def get_tool(tool_id: str) -> Optional[BaseTool]:
    tool_cls = _TOOLS.get(tool_id)
    return tool_cls() if tool_cls is not None else None


def is_tool_supported(tool_id: str) -> bool:
    return tool_id in _TOOLS


async def execute_tool(name: str, arguments: Optional[dict[str, Any]] = None) -> ToolResult:
    """Run a tool by id. Never raises: failures come back as ``success=False``."""

    tool = get_tool(name)
    if tool is None:
        return ToolResult(success=False, error=f"Unknown tool: {name}")
    try:
        return await tool.execute(dict(arguments or {}))
    except Exception as exc:  # noqa: BLE001
        logger.exception("[TOOL_EXECUTION_FAILED] tool=%s", name)
        return ToolResult(success=False, error=str(exc) or type(exc).__name__)


__all__ = [
    "BaseTool",
    "TOOL_DEFINITIONS",
    "ToolResult",
    "WebSearchTool",
    "execute_tool",
    "get_enabled_tools",
    "get_tool",
    "get_tool_by_id",
    "is_tool_supported",
    "resolve_tools",
]
