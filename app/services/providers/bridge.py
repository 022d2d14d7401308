"""Bridges single-shot upstream operations into the streaming chunk contract."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx

from .errors import ProviderError
from .types import AdapterResponse, StreamChunk

logger = logging.getLogger(__name__)


def response_to_chunks(response: AdapterResponse) -> list[StreamChunk]:
    """Re-package a non-streaming result as ``audio|image|text`` chunks + ``done``."""

    chunks: list[StreamChunk] = []
    if response.thinking:
        chunks.append(StreamChunk(type="thinking", content=response.thinking))
    if response.audio is not None:
        chunks.append(StreamChunk(type="audio", content=response.audio.url, mime_type=response.audio.mime_type))
    elif response.images:
        chunks.extend(StreamChunk(type="image", image_url=url) for url in response.images)
    elif response.content:
        chunks.append(StreamChunk(type="text", content=response.content))
    for call in response.tool_calls or []:
        chunks.append(StreamChunk(type="tool_call", tool_call=call))
    chunks.append(StreamChunk.done())
    return chunks


def error_message(exc: BaseException, fallback: str = "Request failed") -> str:
    if isinstance(exc, httpx.TimeoutException):
        return f"Upstream timeout: {type(exc).__name__}"
    if isinstance(exc, httpx.TransportError):
        return f"Upstream connection error: {str(exc) or type(exc).__name__}"
    return str(exc) or fallback


async def stream_single_shot(
    call: Callable[[], Awaitable[AdapterResponse]],
    *,
    label: str,
) -> AsyncIterator[StreamChunk]:
    try:
        response = await call()
    except (ProviderError, httpx.HTTPError) as exc:
        logger.warning("[SINGLE_SHOT_FAILED] label=%s error=%s", label, error_message(exc))
        yield StreamChunk.fail(error_message(exc))
        return
    for chunk in response_to_chunks(response):
        yield chunk
