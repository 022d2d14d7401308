"""ToolDefinition -> vendor function-calling schemas."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from .types import ToolDefinition


def parameters_schema(tool: ToolDefinition, *, upper_types: bool = False) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    for param in tool.parameters:
        prop: dict[str, Any] = {
            "type": param.type.upper() if upper_types else param.type,
            "description": param.description,
        }
        if param.enum:
            prop["enum"] = list(param.enum)
        properties[param.name] = prop
    return {
        "type": "OBJECT" if upper_types else "object",
        "properties": properties,
        "required": [p.name for p in tool.parameters if p.required],
    }


def to_openai_tools(tools: Optional[Sequence[ToolDefinition]]) -> Optional[list[dict[str, Any]]]:
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": tool.id,
                "description": tool.description,
                "parameters": parameters_schema(tool),
            },
        }
        for tool in tools
    ]


def to_anthropic_tools(tools: Optional[Sequence[ToolDefinition]]) -> Optional[list[dict[str, Any]]]:
    if not tools:
        return None
    return [
        {"name": tool.id, "description": tool.description, "input_schema": parameters_schema(tool)}
        for tool in tools
    ]


def to_gemini_tools(tools: Optional[Sequence[ToolDefinition]]) -> Optional[list[dict[str, Any]]]:
    if not tools:
        return None
    return [
        {
            "functionDeclarations": [
                {
                    "name": tool.id,
                    "description": tool.description,
                    "parameters": parameters_schema(tool, upper_types=True),
                }
                for tool in tools
            ]
        }
    ]
