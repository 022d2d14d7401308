"""对话编排：联网搜索增强、SSE 帧输出、工具执行。"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from app.core.middleware import set_current_request_id
from app.services.providers.base import ProviderAdapter
from app.services.providers.bridge import error_message
from app.services.providers.media import content_to_text
from app.services.providers.types import AdapterRequest, AdapterResponse, ChatMessage, StreamChunk
from app.services.tools import execute_tool
from app.services.web_search_service import WebSearchError, WebSearchService, format_search_context

logger = logging.getLogger(__name__)


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def latest_user_text(messages: list[ChatMessage]) -> str:
    for msg in reversed(messages):
        if msg.role == "user":
            return content_to_text(msg.content).strip()
    return ""


async def augment_with_search(
    messages: list[ChatMessage],
    service: WebSearchService,
    *,
    num_results: int = 5,
) -> list[ChatMessage]:
    """在最后一条消息之前插入一条带编号搜索结果的 system 消息。

    搜索失败只记录日志，原样返回消息。
    """

    query = latest_user_text(messages)
    if not query or not messages:
        return messages
    try:
        response = await service.search(query, num_results=num_results)
    except WebSearchError as exc:
        logger.warning("[WEB_SEARCH_FAILED] code=%s error=%s", exc.code, exc)
        return messages
    if not response.results:
        return messages
    context = ChatMessage(role="system", content=format_search_context(response))
    return [*messages[:-1], context, messages[-1]]


async def iter_chat_sse(adapter: ProviderAdapter, request: AdapterRequest) -> AsyncIterator[str]:
    """Relay adapter chunks as SSE frames, executing tools as their calls arrive.

    Stops after ``done`` or ``error``; any exception becomes an ``error``
    frame. The adapter stream is always closed on exit.
    """

    if request.request_id:
        # StreamingResponse 在中间件返回后才迭代 body，这里重新绑定 request_id
        set_current_request_id(request.request_id)
    stream = adapter.chat_stream(request)
    try:
        async for chunk in stream:
            call = chunk.tool_call
            if chunk.type == "tool_call" and call is not None and call.name:
                result = await execute_tool(call.name, call.arguments or {})
                yield sse_frame({"type": "tool_result", "toolId": call.name, "result": result.to_dict()})

            yield sse_frame(chunk.to_dict())
            if chunk.is_terminal:
                break
    except Exception as exc:  # noqa: BLE001
        logger.exception("[CHAT_STREAM_FAILED] dialect=%s model=%s", adapter.dialect, request.model)
        yield sse_frame(StreamChunk.fail(error_message(exc, "Unknown error")).to_dict())
    finally:
        await stream.aclose()


async def run_chat(adapter: ProviderAdapter, request: AdapterRequest) -> AdapterResponse:
    """非流式：调用 ``chat`` 并就地执行返回的工具调用。"""

    response = await adapter.chat(request)
    for call in response.tool_calls or []:
        if not call.name:
            continue
        result = await execute_tool(call.name, call.arguments or {})
        call.result = result.data
        call.status = "success" if result.success else "error"
        if not result.success:
            call.error = result.error
    return response

