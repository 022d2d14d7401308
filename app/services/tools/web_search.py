"""web_search 工具：Serper / Google Custom Search。"""

from __future__ import annotations

from typing import Any, Optional

from app.services.web_search_service import WebSearchError, WebSearchService, get_web_search_service

from .base import BaseTool, ToolResult

DEFAULT_NUM_RESULTS = 5


class WebSearchTool(BaseTool):
    def __init__(self, service: Optional[WebSearchService] = None) -> None:
        self._service = service or get_web_search_service()

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        query = str(arguments.get("query") or "").strip()
        if not query:
            return ToolResult(success=False, error="Missing query parameter")

        try:
            num_results = int(arguments.get("num_results") or DEFAULT_NUM_RESULTS)
        except (TypeError, ValueError):
            num_results = DEFAULT_NUM_RESULTS

        try:
            response = await self._service.search(query, num_results=num_results)
        except WebSearchError as exc:
            return ToolResult(success=False, error=str(exc) or exc.code)
        return ToolResult(success=True, data=response.to_dict())
