"""Tool executor base types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(slots=True)
class ToolResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


class BaseTool(ABC):
    """A server-side tool executor, keyed by tool id in the registry."""

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> ToolResult: ...
