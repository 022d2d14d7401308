"""OpenAI Chat Completions adapter (also serves DeepSeek / Qwen)."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Optional, Sequence

import httpx

from . import upstream
from .base import ProviderAdapter
from .bridge import error_message
from .errors import ProviderError, UpstreamLogicalError
from .sse import iter_sse_data
from .tool_schema import to_openai_tools
from .types import AdapterRequest, AdapterResponse, ChatMessage, StreamChunk, ToolCall, Usage

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
API_ERROR_LABEL = "API Error"


def format_openai_messages(messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
    formatted: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg.content, str):
            formatted.append({"role": msg.role, "content": msg.content})
            continue
        parts: list[dict[str, Any]] = []
        for item in msg.content:
            if item.type == "text":
                parts.append({"type": "text", "text": item.text or ""})
            elif item.type == "image" and item.url:
                parts.append({"type": "image_url", "image_url": {"url": item.url}})
        formatted.append({"role": msg.role, "content": parts})
    return formatted


def build_openai_payload(request: AdapterRequest, *, stream: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": format_openai_messages(request.messages),
        "temperature": DEFAULT_TEMPERATURE if request.temperature is None else request.temperature,
    }
    tools = to_openai_tools(request.tools)
    if tools:
        payload["tools"] = tools
    if request.max_tokens:
        payload["max_tokens"] = request.max_tokens
    if request.reasoning:
        payload["reasoning_effort"] = "high"
    if stream:
        payload["stream"] = True
    return payload


def parse_tool_arguments(raw: Any, *, tool_name: Optional[str] = None) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    text = str(raw or "").strip()
    if not text:
        return {}
    try:
        value = json.loads(text)
    except ValueError:
        logger.warning("[TOOL_ARGS_INVALID] tool=%s raw_len=%s", tool_name, len(text))
        return {}
    return value if isinstance(value, dict) else {}


def parse_usage(data: Any) -> Optional[Usage]:
    if not isinstance(data, dict):
        return None
    return Usage(
        prompt_tokens=int(data.get("prompt_tokens") or 0),
        completion_tokens=int(data.get("completion_tokens") or 0),
        total_tokens=int(data.get("total_tokens") or 0),
    )


def parse_openai_completion(data: Any) -> AdapterResponse:
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices:
        raise UpstreamLogicalError(f"{API_ERROR_LABEL}: upstream returned no choices")
    choice0 = choices[0] if isinstance(choices[0], dict) else {}
    msg = choice0.get("message") if isinstance(choice0.get("message"), dict) else {}

    tool_calls: list[ToolCall] = []
    for item in msg.get("tool_calls") or []:
        fn = item.get("function") if isinstance(item, dict) else None
        if not isinstance(fn, dict):
            continue
        name = fn.get("name")
        tool_calls.append(
            ToolCall(id=item.get("id"), name=name, arguments=parse_tool_arguments(fn.get("arguments"), tool_name=name))
        )

    return AdapterResponse(
        content=str(msg.get("content") or ""),
        thinking=msg.get("reasoning_content") or None,
        tool_calls=tool_calls or None,
        usage=parse_usage(data.get("usage")),
    )


class ToolCallAssembler:
    """Reassembles ``delta.tool_calls`` fragments keyed by ``index``.

    A call is released as soon as its accumulated arguments parse as a JSON
    object; anything still pending is released by :meth:`drain`.
    """

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, Any]] = {}

    def add(self, deltas: list[Any]) -> list[ToolCall]:
        ready: list[ToolCall] = []
        for position, item in enumerate(deltas):
            if not isinstance(item, dict):
                continue
            index = item.get("index") if isinstance(item.get("index"), int) else position
            slot = self._slots.get(index)
            if slot is None or (slot["emitted"] and item.get("id") and item.get("id") != slot["id"]):
                slot = {"id": None, "name": None, "args": "", "emitted": False}
                self._slots[index] = slot
            if slot["emitted"]:
                continue
            fn = item.get("function") if isinstance(item.get("function"), dict) else {}
            if item.get("id"):
                slot["id"] = item["id"]
            if fn.get("name"):
                slot["name"] = fn["name"]
            raw_args = fn.get("arguments")
            if isinstance(raw_args, dict):
                slot["args"] = json.dumps(raw_args, ensure_ascii=False)
            elif isinstance(raw_args, str):
                slot["args"] += raw_args

            if slot["name"] and slot["args"].strip():
                try:
                    parsed = json.loads(slot["args"])
                except ValueError:
                    continue
                if isinstance(parsed, dict):
                    slot["emitted"] = True
                    ready.append(ToolCall(id=slot["id"], name=slot["name"], arguments=parsed))
        return ready

    def drain(self) -> list[ToolCall]:
        ready: list[ToolCall] = []
        for index in sorted(self._slots):
            slot = self._slots[index]
            if slot["emitted"] or not slot["name"]:
                continue
            slot["emitted"] = True
            ready.append(
                ToolCall(
                    id=slot["id"],
                    name=slot["name"],
                    arguments=parse_tool_arguments(slot["args"], tool_name=slot["name"]),
                )
            )
        return ready


def _tool_chunks(calls: list[ToolCall]) -> list[StreamChunk]:
    return [StreamChunk(type="tool_call", tool_call=call) for call in calls]


async def iter_openai_chunks(response: httpx.Response) -> AsyncIterator[StreamChunk]:
    """Translate an OpenAI-style SSE body into chunks.

    Yields ``done`` on ``data: [DONE]`` and ``error`` on an in-band error
    object; returns silently at EOF (the caller decides how to terminate).
    """

    assembler = ToolCallAssembler()
    async for _, raw_text in iter_sse_data(response):
        if raw_text.strip() == "[DONE]":
            for chunk in _tool_chunks(assembler.drain()):
                yield chunk
            yield StreamChunk.done()
            return
        if not raw_text:
            continue
        try:
            obj = json.loads(raw_text)
        except ValueError:
            continue
        if not isinstance(obj, dict):
            continue

        err = obj.get("error")
        if err:
            message = err.get("message") if isinstance(err, dict) else str(err)
            yield StreamChunk.fail(f"{API_ERROR_LABEL}: {message or 'upstream_error'}")
            return

        choices = obj.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            continue
        choice0 = choices[0]
        delta = choice0.get("delta") if isinstance(choice0.get("delta"), dict) else {}

        reasoning = delta.get("reasoning_content")
        if isinstance(reasoning, str) and reasoning:
            yield StreamChunk(type="thinking", content=reasoning)

        text = delta.get("content")
        if isinstance(text, str) and text:
            yield StreamChunk(type="text", content=text)

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list) and tool_calls:
            for chunk in _tool_chunks(assembler.add(tool_calls)):
                yield chunk

        if choice0.get("finish_reason"):
            for chunk in _tool_chunks(assembler.drain()):
                yield chunk

    for chunk in _tool_chunks(assembler.drain()):
        yield chunk


async def post_chat_completions(
    *,
    url: str,
    payload: dict[str, Any],
    api_key: str,
    timeout: Optional[float],
    request_id: Optional[str],
) -> Any:
    base_headers = upstream.json_headers(request_id)
    candidates = upstream.bearer_auth_candidates(api_key, url)
    async with upstream.open_client(timeout) as client:
        for index, auth_headers in enumerate(candidates):
            response = await client.post(url, json=payload, headers={**base_headers, **auth_headers})
            if index < len(candidates) - 1 and upstream.is_retryable_auth_error(response.status_code, response.content):
                continue
            return upstream.read_json(response, API_ERROR_LABEL)
    raise UpstreamLogicalError(f"{API_ERROR_LABEL}: no response")


async def stream_chat_completions(
    *,
    url: str,
    payload: dict[str, Any],
    api_key: str,
    timeout: Optional[float],
    request_id: Optional[str],
    dialect: str,
) -> AsyncIterator[StreamChunk]:
    base_headers = upstream.json_headers(request_id, stream=True)
    candidates = upstream.bearer_auth_candidates(api_key, url)
    try:
        async with upstream.open_client(timeout) as client:
            for index, auth_headers in enumerate(candidates):
                headers = {**base_headers, **auth_headers}
                async with client.stream("POST", url, json=payload, headers=headers) as response:
                    if response.status_code >= 400:
                        err = await upstream.read_error(response, API_ERROR_LABEL)
                        if index < len(candidates) - 1 and upstream.is_retryable_auth_error(
                            response.status_code, err.body or ""
                        ):
                            continue
                        yield StreamChunk.fail(str(err))
                        return

                    content_type = str(response.headers.get("content-type") or "").lower()
                    if "text/event-stream" not in content_type and "application/json" in content_type:
                        # 部分兼容网关忽略 stream=true，直接返回整包 JSON
                        logger.warning("[UPSTREAM_NOT_SSE] dialect=%s content_type=%s", dialect, content_type)
                        raw = await response.aread()
                        try:
                            result = parse_openai_completion(json.loads(raw))
                        except (ValueError, ProviderError) as exc:
                            yield StreamChunk.fail(error_message(exc))
                            return
                        if result.thinking:
                            yield StreamChunk(type="thinking", content=result.thinking)
                        if result.content:
                            yield StreamChunk(type="text", content=result.content)
                        for call in result.tool_calls or []:
                            yield StreamChunk(type="tool_call", tool_call=call)
                        yield StreamChunk.done()
                        return

                    async for chunk in iter_openai_chunks(response):
                        yield chunk
                        if chunk.is_terminal:
                            return
                    break
    except httpx.TransportError as exc:
        logger.warning("[UPSTREAM_TRANSPORT_ERROR] dialect=%s error=%s", dialect, error_message(exc))
        yield StreamChunk.fail(error_message(exc))
        return

    yield StreamChunk.done()


class OpenAIChatCompletionsAdapter(ProviderAdapter):
    dialect = "openai.chat_completions"

    def build_request(self, request: AdapterRequest, *, stream: bool) -> tuple[str, dict[str, Any]]:
        url = upstream.join_url(request.base_url, "/chat/completions")
        return url, build_openai_payload(request, stream=stream)

    async def chat(self, request: AdapterRequest) -> AdapterResponse:
        url, payload = self.build_request(request, stream=False)
        data = await post_chat_completions(
            url=url,
            payload=payload,
            api_key=request.api_key,
            timeout=request.timeout,
            request_id=request.request_id,
        )
        return parse_openai_completion(data)

    def chat_stream(self, request: AdapterRequest) -> AsyncIterator[StreamChunk]:
        url, payload = self.build_request(request, stream=True)
        return stream_chat_completions(
            url=url,
            payload=payload,
            api_key=request.api_key,
            timeout=request.timeout,
            request_id=request.request_id,
            dialect=self.dialect,
        )
