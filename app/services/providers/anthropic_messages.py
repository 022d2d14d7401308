"""Anthropic Messages adapter."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Optional, Sequence

import httpx

from . import upstream
from .base import ProviderAdapter
from .bridge import error_message
from .errors import ProviderError, UnsupportedContentError, UpstreamLogicalError
from .media import content_to_text, resolve_media_base64
from .openai_chat_completions import DEFAULT_TEMPERATURE, parse_tool_arguments
from .sse import iter_sse_data
from .tool_schema import to_anthropic_tools
from .types import AdapterRequest, AdapterResponse, ChatMessage, ContentItem, StreamChunk, ToolCall, Usage

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096
THINKING_BUDGET_TOKENS = 2048
API_ERROR_LABEL = "API Error"


async def _format_item(client: httpx.AsyncClient, item: ContentItem) -> dict[str, Any]:
    if item.type == "text":
        return {"type": "text", "text": item.text or ""}

    mime_hint = str(item.mime_type or "").lower()
    if item.type == "image" or (item.type == "file" and mime_hint.startswith("image/")):
        data, mime_type = await resolve_media_base64(client, item)
        return {"type": "image", "source": {"type": "base64", "media_type": mime_type or "image/png", "data": data}}

    if item.type == "file":
        data, mime_type = await resolve_media_base64(client, item)
        if mime_type == "application/pdf":
            return {"type": "document", "source": {"type": "base64", "media_type": mime_type, "data": data}}
        raise UnsupportedContentError(f"Anthropic does not accept file attachments of type {mime_type}")

    raise UnsupportedContentError(f"Anthropic does not accept {item.type} content")


async def format_anthropic_messages(
    client: httpx.AsyncClient, messages: Sequence[ChatMessage]
) -> tuple[Optional[str], list[dict[str, Any]]]:
    """Split out ``system`` turns and convert the rest to Messages API blocks."""

    system_parts: list[str] = []
    formatted: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            text = content_to_text(msg.content)
            if text:
                system_parts.append(text)
            continue
        if isinstance(msg.content, str):
            formatted.append({"role": msg.role, "content": msg.content})
            continue
        blocks = [await _format_item(client, item) for item in msg.content]
        formatted.append({"role": msg.role, "content": blocks})
    return ("\n\n".join(system_parts) or None), formatted


async def build_anthropic_payload(
    client: httpx.AsyncClient, request: AdapterRequest, *, stream: bool
) -> dict[str, Any]:
    system, messages = await format_anthropic_messages(client, request.messages)
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
    }
    if system:
        payload["system"] = system
    tools = to_anthropic_tools(request.tools)
    if tools:
        payload["tools"] = tools
    if request.reasoning:
        # extended thinking 下上游不接受自定义 temperature
        payload["thinking"] = {"type": "enabled", "budget_tokens": THINKING_BUDGET_TOKENS}
    else:
        payload["temperature"] = DEFAULT_TEMPERATURE if request.temperature is None else request.temperature
    if stream:
        payload["stream"] = True
    return payload


def _parse_usage(data: Any) -> Optional[Usage]:
    if not isinstance(data, dict):
        return None
    prompt = int(data.get("input_tokens") or 0)
    completion = int(data.get("output_tokens") or 0)
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


def parse_anthropic_message(data: Any) -> AdapterResponse:
    blocks = data.get("content") if isinstance(data, dict) else None
    if not isinstance(blocks, list):
        raise UpstreamLogicalError(f"{API_ERROR_LABEL}: upstream returned no content")

    text_parts: list[str] = []
    thinking_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        kind = block.get("type")
        if kind == "text":
            text_parts.append(str(block.get("text") or ""))
        elif kind == "thinking":
            thinking_parts.append(str(block.get("thinking") or ""))
        elif kind == "tool_use":
            tool_calls.append(
                ToolCall(
                    id=block.get("id"),
                    name=block.get("name"),
                    arguments=block.get("input") if isinstance(block.get("input"), dict) else {},
                )
            )

    return AdapterResponse(
        content="".join(text_parts),
        thinking="".join(thinking_parts) or None,
        tool_calls=tool_calls or None,
        usage=_parse_usage(data.get("usage")),
    )


async def iter_anthropic_chunks(response: httpx.Response) -> AsyncIterator[StreamChunk]:
    """Translate a Messages SSE body into chunks.

    ``tool_use`` arguments arrive as ``input_json_delta`` fragments; they are
    buffered per block index and parsed once at ``content_block_stop``.
    """

    tool_blocks: dict[int, dict[str, Any]] = {}

    def finish_block(index: Any) -> Optional[StreamChunk]:
        block = tool_blocks.pop(index, None)
        if block is None:
            return None
        arguments = parse_tool_arguments("".join(block["json"]), tool_name=block["name"])
        return StreamChunk(type="tool_call", tool_call=ToolCall(id=block["id"], name=block["name"], arguments=arguments))

    async for event_name, raw_text in iter_sse_data(response):
        if not raw_text:
            continue
        try:
            obj = json.loads(raw_text)
        except ValueError:
            continue
        if not isinstance(obj, dict):
            continue
        kind = obj.get("type") or event_name

        if kind == "error":
            err = obj.get("error")
            message = err.get("message") if isinstance(err, dict) else err
            yield StreamChunk.fail(f"{API_ERROR_LABEL}: {message or 'upstream_error'}")
            return

        if kind == "content_block_start":
            block = obj.get("content_block") if isinstance(obj.get("content_block"), dict) else {}
            if block.get("type") == "tool_use":
                tool_blocks[obj.get("index")] = {"id": block.get("id"), "name": block.get("name"), "json": []}
            continue

        if kind == "content_block_delta":
            delta = obj.get("delta") if isinstance(obj.get("delta"), dict) else {}
            delta_type = delta.get("type")
            if delta_type == "text_delta" and delta.get("text"):
                yield StreamChunk(type="text", content=delta["text"])
            elif delta_type == "thinking_delta" and delta.get("thinking"):
                yield StreamChunk(type="thinking", content=delta["thinking"])
            elif delta_type == "input_json_delta":
                block = tool_blocks.get(obj.get("index"))
                if block is not None:
                    block["json"].append(str(delta.get("partial_json") or ""))
            continue

        if kind == "content_block_stop":
            chunk = finish_block(obj.get("index"))
            if chunk is not None:
                yield chunk
            continue

        if kind == "message_stop":
            for index in list(tool_blocks):
                chunk = finish_block(index)
                if chunk is not None:
                    yield chunk
            yield StreamChunk.done()
            return

    for index in list(tool_blocks):
        chunk = finish_block(index)
        if chunk is not None:
            yield chunk


class AnthropicMessagesAdapter(ProviderAdapter):
    dialect = "anthropic.messages"

    def _headers(self, request: AdapterRequest, *, stream: bool) -> dict[str, str]:
        return {
            **upstream.json_headers(request.request_id, stream=stream),
            **upstream.anthropic_auth_headers(request.api_key, ANTHROPIC_VERSION),
        }

    async def chat(self, request: AdapterRequest) -> AdapterResponse:
        url = upstream.join_url(request.base_url, "/messages")
        async with upstream.open_client(request.timeout) as client:
            payload = await build_anthropic_payload(client, request, stream=False)
            response = await client.post(url, json=payload, headers=self._headers(request, stream=False))
            data = upstream.read_json(response, API_ERROR_LABEL)
        return parse_anthropic_message(data)

    async def chat_stream(self, request: AdapterRequest) -> AsyncIterator[StreamChunk]:
        url = upstream.join_url(request.base_url, "/messages")
        try:
            async with upstream.open_client(request.timeout) as client:
                try:
                    payload = await build_anthropic_payload(client, request, stream=True)
                except ProviderError as exc:
                    yield StreamChunk.fail(str(exc))
                    return
                headers = self._headers(request, stream=True)
                async with client.stream("POST", url, json=payload, headers=headers) as response:
                    if response.status_code >= 400:
                        err = await upstream.read_error(response, API_ERROR_LABEL)
                        yield StreamChunk.fail(str(err))
                        return
                    async for chunk in iter_anthropic_chunks(response):
                        yield chunk
                        if chunk.is_terminal:
                            return
        except httpx.TransportError as exc:
            logger.warning("[UPSTREAM_TRANSPORT_ERROR] dialect=%s error=%s", self.dialect, error_message(exc))
            yield StreamChunk.fail(error_message(exc))
            return

        yield StreamChunk.done()
