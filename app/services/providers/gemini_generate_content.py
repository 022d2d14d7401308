"""Google Gemini generateContent adapter (chat, TTS, native audio, image output)."""

from __future__ import annotations

import contextlib
import json
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any, Optional, Sequence

import httpx

from . import upstream
from .base import ProviderAdapter
from .bridge import error_message, stream_single_shot
from .dispatch import AUDIO_INPUT_TYPES, ModelType, detect_model_type, has_audio_attachment
from .errors import ProviderError, UpstreamLogicalError
from .media import (
    b64decode_text,
    build_data_uri,
    content_to_text,
    is_pcm_mime,
    parse_data_uri,
    pcm_to_wav_data_uri,
)
from .openai_chat_completions import DEFAULT_TEMPERATURE
from .sse import iter_sse_data
from .tool_schema import to_gemini_tools
from .types import (
    AdapterRequest,
    AdapterResponse,
    AudioOutput,
    ChatMessage,
    ContentItem,
    StreamChunk,
    ToolCall,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
THINKING_BUDGET_TOKENS = 2048
API_ERROR_LABEL = "API Error"
TTS_ERROR_LABEL = "TTS API Error"


def _format_part(item: ContentItem) -> Optional[dict[str, Any]]:
    if item.type == "text":
        return {"text": item.text or ""}
    if not item.url:
        return None
    parsed = parse_data_uri(item.url)
    if parsed is not None:
        return {"inlineData": {"mimeType": item.mime_type or parsed.mime_type, "data": "".join(parsed.data.split())}}
    file_data: dict[str, Any] = {"fileUri": item.url}
    if item.mime_type:
        file_data["mimeType"] = item.mime_type
    return {"fileData": file_data}


def format_gemini_contents(
    messages: Sequence[ChatMessage],
) -> tuple[Optional[dict[str, Any]], list[dict[str, Any]]]:
    """Return ``(systemInstruction, contents)``; ``assistant`` becomes ``model``."""

    system_parts: list[dict[str, Any]] = []
    contents: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            text = content_to_text(msg.content)
            if text:
                system_parts.append({"text": text})
            continue
        role = "model" if msg.role == "assistant" else "user"
        if isinstance(msg.content, str):
            contents.append({"role": role, "parts": [{"text": msg.content}]})
            continue
        parts = [part for part in (_format_part(item) for item in msg.content) if part is not None]
        contents.append({"role": role, "parts": parts})
    system_instruction = {"parts": system_parts} if system_parts else None
    return system_instruction, contents


def build_generation_config(request: AdapterRequest, *, modalities: Optional[list[str]] = None) -> dict[str, Any]:
    config: dict[str, Any] = {
        "temperature": DEFAULT_TEMPERATURE if request.temperature is None else request.temperature,
    }
    if request.max_tokens:
        config["maxOutputTokens"] = request.max_tokens
    if request.reasoning:
        config["thinkingConfig"] = {"includeThoughts": True, "thinkingBudget": THINKING_BUDGET_TOKENS}
    if modalities:
        config["responseModalities"] = modalities
    return config


def _parse_usage(data: Any) -> Optional[Usage]:
    if not isinstance(data, dict):
        return None
    return Usage(
        prompt_tokens=int(data.get("promptTokenCount") or 0),
        completion_tokens=int(data.get("candidatesTokenCount") or 0),
        total_tokens=int(data.get("totalTokenCount") or 0),
    )


def _candidate_parts(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict):
        return []
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    return [p for p in parts if isinstance(p, dict)] if isinstance(parts, list) else []


def _function_call(part: dict[str, Any]) -> Optional[ToolCall]:
    fn = part.get("functionCall")
    if not isinstance(fn, dict):
        return None
    args = fn.get("args")
    return ToolCall(id=str(uuid.uuid4()), name=fn.get("name"), arguments=args if isinstance(args, dict) else {})


def _inline_data(part: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    inline = part.get("inlineData")
    if not isinstance(inline, dict) or not inline.get("data"):
        return None, None
    return str(inline.get("mimeType") or ""), str(inline["data"])


def _audio_output(mime_type: str, data: str) -> AudioOutput:
    if is_pcm_mime(mime_type):
        return AudioOutput(url=pcm_to_wav_data_uri(b64decode_text(data), mime_type), mime_type="audio/wav")
    mime_type = mime_type or "audio/mp3"
    return AudioOutput(url=build_data_uri(mime_type, data), mime_type=mime_type)


def parse_gemini_response(data: Any) -> AdapterResponse:
    text_parts: list[str] = []
    thinking_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    images: list[str] = []
    pcm = bytearray()
    pcm_mime: Optional[str] = None
    audio: Optional[AudioOutput] = None

    for part in _candidate_parts(data):
        text = part.get("text")
        if isinstance(text, str) and text:
            # thought 是布尔标记，text 才是实际内容
            (thinking_parts if part.get("thought") is True else text_parts).append(text)
        call = _function_call(part)
        if call is not None:
            tool_calls.append(call)
        mime_type, payload = _inline_data(part)
        if payload is None:
            continue
        if mime_type.startswith("image/"):
            images.append(build_data_uri(mime_type, payload))
        elif is_pcm_mime(mime_type):
            pcm.extend(b64decode_text(payload))
            pcm_mime = mime_type
        elif mime_type.startswith("audio/"):
            audio = _audio_output(mime_type, payload)

    if pcm:
        audio = AudioOutput(url=pcm_to_wav_data_uri(bytes(pcm), pcm_mime), mime_type="audio/wav")

    return AdapterResponse(
        content="".join(text_parts),
        thinking="".join(thinking_parts) or None,
        tool_calls=tool_calls or None,
        images=images or None,
        audio=audio,
        usage=_parse_usage(data.get("usageMetadata") if isinstance(data, dict) else None),
    )


async def iter_gemini_chunks(response: httpx.Response) -> AsyncIterator[StreamChunk]:
    """Translate a ``streamGenerateContent?alt=sse`` body into chunks.

    PCM audio is held back and emitted once, as WAV, after the body ends;
    everything else is forwarded as it arrives.
    """

    pcm = bytearray()
    pcm_mime: Optional[str] = None

    async for _, raw_text in iter_sse_data(response):
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
            message = err.get("message") if isinstance(err, dict) else err
            yield StreamChunk.fail(f"{API_ERROR_LABEL}: {message or 'upstream_error'}")
            return

        for part in _candidate_parts(obj):
            text = part.get("text")
            if isinstance(text, str) and text:
                yield StreamChunk(type="thinking" if part.get("thought") is True else "text", content=text)
            call = _function_call(part)
            if call is not None:
                yield StreamChunk(type="tool_call", tool_call=call)
            mime_type, payload = _inline_data(part)
            if payload is None:
                continue
            if mime_type.startswith("image/"):
                yield StreamChunk(type="image", image_url=build_data_uri(mime_type, payload), mime_type=mime_type)
            elif is_pcm_mime(mime_type):
                pcm.extend(b64decode_text(payload))
                pcm_mime = mime_type
            elif mime_type.startswith("audio/"):
                audio = _audio_output(mime_type, payload)
                yield StreamChunk(type="audio", content=audio.url, mime_type=audio.mime_type)

    if pcm:
        yield StreamChunk(type="audio", content=pcm_to_wav_data_uri(bytes(pcm), pcm_mime), mime_type="audio/wav")


class GeminiGenerateContentAdapter(ProviderAdapter):
    dialect = "gemini.generate_content"

    def _url(self, request: AdapterRequest, method: str) -> str:
        base = request.base_url or DEFAULT_GEMINI_BASE_URL
        return upstream.join_url(base, f"/models/{request.model}:{method}")

    def _mode(self, request: AdapterRequest) -> ModelType:
        model_type = detect_model_type(request.capabilities)
        if model_type is ModelType.TTS:
            return ModelType.TTS
        if model_type in AUDIO_INPUT_TYPES:
            # 只有真正带了音频附件才走原生音频，否则按普通对话处理
            return model_type if has_audio_attachment(request.last_message) else ModelType.CHAT
        return model_type

    def build_payload(self, request: AdapterRequest) -> dict[str, Any]:
        mode = self._mode(request)
        if mode is ModelType.TTS:
            last = request.last_message
            text = content_to_text(last.content) if last is not None else ""
            return {
                "contents": [{"role": "user", "parts": [{"text": text}]}],
                "generationConfig": {"responseModalities": ["AUDIO"]},
            }

        modalities: Optional[list[str]] = None
        if mode in AUDIO_INPUT_TYPES:
            modalities = ["TEXT", "AUDIO"]
        elif mode is ModelType.IMAGE:
            modalities = ["TEXT", "IMAGE"]

        system_instruction, contents = format_gemini_contents(request.messages)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": build_generation_config(request, modalities=modalities),
        }
        if system_instruction:
            payload["systemInstruction"] = system_instruction
        tools = to_gemini_tools(request.tools)
        if tools:
            payload["tools"] = tools
        return payload

    async def _tts(self, request: AdapterRequest) -> AdapterResponse:
        url = self._url(request, "generateContent")
        async with upstream.open_client(request.timeout) as client:
            response = await client.post(
                url,
                params={"key": request.api_key},
                json=self.build_payload(request),
                headers=upstream.json_headers(request.request_id),
            )
            data = upstream.read_json(response, TTS_ERROR_LABEL)

        for part in _candidate_parts(data):
            mime_type, payload = _inline_data(part)
            if payload is not None:
                return AdapterResponse(content="", audio=_audio_output(mime_type or "", payload))
        raise UpstreamLogicalError("TTS response did not contain audio data")

    async def chat(self, request: AdapterRequest) -> AdapterResponse:
        if self._mode(request) is ModelType.TTS:
            return await self._tts(request)

        url = self._url(request, "generateContent")
        async with upstream.open_client(request.timeout) as client:
            response = await client.post(
                url,
                params={"key": request.api_key},
                json=self.build_payload(request),
                headers=upstream.json_headers(request.request_id),
            )
            data = upstream.read_json(response, API_ERROR_LABEL)
        return parse_gemini_response(data)

    async def chat_stream(self, request: AdapterRequest) -> AsyncIterator[StreamChunk]:
        if self._mode(request) is ModelType.TTS:
            async with contextlib.aclosing(stream_single_shot(lambda: self._tts(request), label=self.dialect)) as chunks:
                async for chunk in chunks:
                    yield chunk
            return

        url = self._url(request, "streamGenerateContent")
        payload = self.build_payload(request)
        try:
            async with upstream.open_client(request.timeout) as client:
                async with client.stream(
                    "POST",
                    url,
                    params={"key": request.api_key, "alt": "sse"},
                    json=payload,
                    headers=upstream.json_headers(request.request_id, stream=True),
                ) as response:
                    if response.status_code >= 400:
                        err = await upstream.read_error(response, API_ERROR_LABEL)
                        yield StreamChunk.fail(str(err))
                        return
                    async for chunk in iter_gemini_chunks(response):
                        yield chunk
                        if chunk.is_terminal:
                            return
        except httpx.TransportError as exc:
            logger.warning("[UPSTREAM_TRANSPORT_ERROR] dialect=%s error=%s", self.dialect, error_message(exc))
            yield StreamChunk.fail(error_message(exc))
            return
        except ProviderError as exc:
            yield StreamChunk.fail(str(exc))
            return

        yield StreamChunk.done()
