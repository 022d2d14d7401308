"""Cloudflare Workers AI adapter.

Base URL looks like ``https://api.cloudflare.com/client/v4/accounts/{ACCOUNT_ID}/ai``.
Chat goes through the OpenAI-compatible ``{base}/v1/chat/completions``; TTS, ASR/STT
and image generation go through the native ``{base}/run/{model}`` endpoints, which
wrap every answer in ``{success, result, errors}``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from . import upstream
from .base import ProviderAdapter
from .bridge import stream_single_shot
from .dispatch import AUDIO_INPUT_TYPES, ModelType, detect_model_type
from .errors import UpstreamLogicalError, format_upstream_error
from .media import build_data_uri, content_to_text, find_item, mime_to_extension, resolve_media, resolve_media_base64
from .openai_chat_completions import (
    build_openai_payload,
    parse_openai_completion,
    post_chat_completions,
    stream_chat_completions,
)
from .types import AdapterRequest, AdapterResponse, AudioOutput, StreamChunk

logger = logging.getLogger(__name__)

ASR_PLACEHOLDER = "Please upload an audio file for speech recognition."

TEXT_TO_IMAGE_FIELDS = {"num_steps": "4", "guidance": "7.5"}
IMAGE_TO_IMAGE_FIELDS = {"strength": "0.6", "guidance": "7.5"}


def _seconds(word: dict[str, Any], key: str) -> float:
    try:
        return float(word.get(key) or 0)
    except (TypeError, ValueError):
        return 0.0


def _segment_words(segment: dict[str, Any]) -> list[dict[str, Any]]:
    words = segment.get("words")
    if not isinstance(words, list):
        return []
    return [w for w in words if isinstance(w, dict)]


def format_transcript(result: dict[str, Any]) -> str:
    """Render ASR output as an overall span line plus one line per segment.

    Words that are not ``{start, end}`` objects are skipped; segments left
    without usable words are omitted.
    """

    full_text = str(result.get("text") or "")
    raw_segments = result.get("segments")
    segments = [s for s in raw_segments if isinstance(s, dict)] if isinstance(raw_segments, list) else []
    if not segments:
        return full_text.strip()

    last_words = _segment_words(segments[-1])
    end_time = _seconds(last_words[-1], "end") if last_words else 0.0
    lines = [f"**[0.00 → {end_time:.2f}]** {full_text}", ""]
    for segment in segments:
        words = _segment_words(segment)
        if not words:
            continue
        start = _seconds(words[0], "start")
        end = _seconds(words[-1], "end")
        lines.append(f"**[{start:.2f} → {end:.2f}]** {str(segment.get('text') or '').strip()}")
    return "\n".join(lines).strip()


class CloudflareWorkersAIAdapter(ProviderAdapter):
    dialect = "cloudflare.workers_ai"

    def _run_url(self, request: AdapterRequest) -> str:
        return upstream.join_url(request.base_url, f"/run/{request.model}")

    def _auth_headers(self, request: AdapterRequest) -> dict[str, str]:
        headers = upstream.json_headers(request.request_id)
        headers.pop("Content-Type", None)
        headers["Authorization"] = f"Bearer {request.api_key}"
        return headers

    def _unwrap(self, response: httpx.Response, label: str) -> dict[str, Any]:
        """HTTP 200 不代表成功：必须显式检查 ``success``。"""

        data = upstream.read_json(response, label)
        if not isinstance(data, dict) or not data.get("success"):
            detail = data.get("errors") if isinstance(data, dict) and data.get("errors") else data
            logger.warning("[CLOUDFLARE_RUN_FAILED] label=%s detail=%s", label, str(detail)[:240])
            raise UpstreamLogicalError(f"{label}: {format_upstream_error(_as_json_text(detail))}")
        result = data.get("result")
        if not isinstance(result, dict):
            raise UpstreamLogicalError(f"{label}: upstream returned no result")
        return result

    async def _run_json(self, request: AdapterRequest, body: dict[str, Any], label: str) -> dict[str, Any]:
        headers = {**upstream.json_headers(request.request_id), **self._auth_headers(request)}
        async with upstream.open_client(request.timeout) as client:
            response = await client.post(self._run_url(request), json=body, headers=headers)
            return self._unwrap(response, label)

    async def text_to_image(self, request: AdapterRequest) -> AdapterResponse:
        last = request.last_message
        prompt = content_to_text(last.content) if last is not None else ""
        image_item = find_item(last.content if last is not None else None, "image")

        async with upstream.open_client(request.timeout) as client:
            if image_item is not None:
                label = "Image-to-Image API Error"
                image_bytes, mime_type = await resolve_media(client, image_item)
                mime_type = mime_type or "image/png"
                file_name = image_item.file_name or f"input.{mime_to_extension(mime_type)}"
                files: dict[str, Any] = {"prompt": (None, prompt)}
                files.update({key: (None, value) for key, value in IMAGE_TO_IMAGE_FIELDS.items()})
                files["image"] = (file_name, image_bytes, mime_type)
            else:
                label = "Image API Error"
                files = {"prompt": (None, prompt)}
                files.update({key: (None, value) for key, value in TEXT_TO_IMAGE_FIELDS.items()})

            response = await client.post(self._run_url(request), files=files, headers=self._auth_headers(request))
            result = self._unwrap(response, label)

        image = result.get("image")
        if not image:
            raise UpstreamLogicalError(f"{label}: upstream returned no image")
        return AdapterResponse(content="", images=[build_data_uri("image/png", str(image))])

    async def text_to_speech(self, request: AdapterRequest) -> AdapterResponse:
        label = "TTS API Error"
        last = request.last_message
        text = content_to_text(last.content) if last is not None else ""
        result = await self._run_json(request, {"prompt": text}, label)
        audio = result.get("audio")
        if not audio:
            raise UpstreamLogicalError(f"{label}: upstream returned no audio")
        return AdapterResponse(
            content="",
            audio=AudioOutput(url=build_data_uri("audio/wav", str(audio)), mime_type="audio/wav"),
        )

    async def speech_to_text(self, request: AdapterRequest) -> AdapterResponse:
        label = "ASR API Error"
        last = request.last_message
        audio_item = find_item(last.content if last is not None else None, "audio", "file")
        if audio_item is None:
            return AdapterResponse(content=ASR_PLACEHOLDER)

        async with upstream.open_client(request.timeout) as client:
            audio_b64, _ = await resolve_media_base64(client, audio_item)
            headers = {**upstream.json_headers(request.request_id), **self._auth_headers(request)}
            response = await client.post(self._run_url(request), json={"audio": audio_b64}, headers=headers)
            result = self._unwrap(response, label)

        if not result.get("text"):
            raise UpstreamLogicalError(f"{label}: upstream returned no text")
        return AdapterResponse(content=format_transcript(result))

    async def chat_completion(self, request: AdapterRequest) -> AdapterResponse:
        data = await post_chat_completions(
            url=upstream.join_url(request.base_url, "/v1/chat/completions"),
            payload=build_openai_payload(request, stream=False),
            api_key=request.api_key,
            timeout=request.timeout,
            request_id=request.request_id,
        )
        return parse_openai_completion(data)

    def _operation(self, request: AdapterRequest):
        model_type = detect_model_type(request.capabilities)
        if model_type is ModelType.TTS:
            return self.text_to_speech
        if model_type in AUDIO_INPUT_TYPES:
            return self.speech_to_text
        if model_type is ModelType.IMAGE:
            return self.text_to_image
        return None

    async def chat(self, request: AdapterRequest) -> AdapterResponse:
        operation = self._operation(request)
        if operation is None:
            return await self.chat_completion(request)
        return await operation(request)

    def chat_stream(self, request: AdapterRequest) -> AsyncIterator[StreamChunk]:
        operation = self._operation(request)
        if operation is not None:
            # /run/ 端点不支持流式：单次调用后重新包装成 chunk 序列
            return stream_single_shot(lambda: operation(request), label=self.dialect)

        return stream_chat_completions(
            url=upstream.join_url(request.base_url, "/v1/chat/completions"),
            payload=build_openai_payload(request, stream=True),
            api_key=request.api_key,
            timeout=request.timeout,
            request_id=request.request_id,
            dialect=self.dialect,
        )


def _as_json_text(detail: Any) -> str:
    try:
        return json.dumps(detail, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(detail)
