"""内置工具定义（发送给模型的 function schema 来源）。"""

from __future__ import annotations

from typing import Optional

from app.services.providers.types import ToolDefinition, ToolParameter
from app.settings.config import Settings, get_settings

TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        id="web_search",
        name="Web Search",
        description=(
            "Search the web for information. Use this when you need to find current information, "
            "news, or facts that may not be in your training data."
        ),
        icon="/icons/tools/search.svg",
        builtin=True,
        parameters=(
            ToolParameter(name="query", type="string", description="The search query", required=True),
            ToolParameter(
                name="num_results",
                type="number",
                description="Number of results to return (default: 5)",
            ),
        ),
    ),
    ToolDefinition(
        id="code_interpreter",
        name="Code Interpreter",
        description="Execute Python code to perform calculations, data analysis, or generate visualizations.",
        icon="/icons/tools/code.svg",
        builtin=True,
        parameters=(
            ToolParameter(name="code", type="string", description="The Python code to execute", required=True),
        ),
    ),
)


def get_enabled_tools(settings: Optional[Settings] = None) -> list[ToolDefinition]:
    """TOOL_<ID>_ENABLED=true 的工具。"""

    settings = settings or get_settings()
    return [tool for tool in TOOL_DEFINITIONS if settings.tool_enabled(tool.id)]


def get_tool_by_id(tool_id: str) -> Optional[ToolDefinition]:
    for tool in TOOL_DEFINITIONS:
        if tool.id == tool_id:
            return tool
    return None


def resolve_tools(tool_ids: Optional[list[str]]) -> list[ToolDefinition]:
    """按 id 解析工具定义；未知 id 直接丢弃。"""

    resolved: list[ToolDefinition] = []
    for tool_id in tool_ids or []:
        tool = get_tool_by_id(tool_id)
        if tool is not None:
            resolved.append(tool)
    return resolved
