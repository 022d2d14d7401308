"""Content flattening and binary helpers (base64, data: URIs, WAV synthesis)."""

from __future__ import annotations

import base64
import binascii
import re
import struct
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from .errors import UpstreamHTTPError, UnsupportedContentError
from .types import ContentItem, MessageContent

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<data>.*)$", re.DOTALL)
_PCM_RATE_PATTERN = re.compile(r"rate=(\d+)", re.IGNORECASE)

DEFAULT_PCM_SAMPLE_RATE = 24000
WAV_HEADER_SIZE = 44

_MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/svg+xml": "svg",
    "image/tiff": "tiff",
}


def content_to_text(content: MessageContent | Sequence[ContentItem] | None) -> str:
    """Flatten message content to plain text (text items joined by newlines)."""

    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(item.text or "" for item in content if item.type == "text")


def extract_images(content: MessageContent | Sequence[ContentItem] | None) -> list[str]:
    if not content or isinstance(content, str):
        return []
    return [item.url for item in content if item.type == "image" and item.url]


def find_item(content: MessageContent | None, *types: str) -> Optional[ContentItem]:
    """First item of one of ``types`` that carries a URL/payload."""

    if not content or isinstance(content, str):
        return None
    for item in content:
        if item.type in types and item.url:
            return item
    return None


def b64encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode_text(text: str) -> bytes:
    cleaned = "".join(str(text or "").split())
    try:
        return base64.b64decode(cleaned + "=" * (-len(cleaned) % 4))
    except (binascii.Error, ValueError) as exc:
        raise UnsupportedContentError("invalid base64 payload") from exc


@dataclass(frozen=True, slots=True)
class DataURI:
    mime_type: str
    data: str
    is_base64: bool = True

    def to_bytes(self) -> bytes:
        if self.is_base64:
            return b64decode_text(self.data)
        return self.data.encode("utf-8")


def is_data_uri(url: Optional[str]) -> bool:
    return bool(url) and str(url).startswith("data:")


def parse_data_uri(url: Optional[str]) -> Optional[DataURI]:
    if not is_data_uri(url):
        return None
    match = _DATA_URI_PATTERN.match(str(url))
    if not match:
        return None
    params = [p.strip().lower() for p in match.group("params").split(";") if p.strip()]
    mime = match.group("mime").strip() or "application/octet-stream"
    return DataURI(mime_type=mime, data=match.group("data"), is_base64="base64" in params)


def build_data_uri(mime_type: str, b64_data: str) -> str:
    return f"data:{mime_type};base64,{b64_data}"


def mime_to_extension(mime_type: Optional[str]) -> str:
    return _MIME_EXTENSIONS.get(str(mime_type or "").lower(), "png")


def is_pcm_mime(mime_type: Optional[str]) -> bool:
    text = str(mime_type or "").lower()
    return "pcm" in text or text.startswith("audio/l16")


def pcm_sample_rate(mime_type: Optional[str], default: int = DEFAULT_PCM_SAMPLE_RATE) -> int:
    match = _PCM_RATE_PATTERN.search(str(mime_type or ""))
    return int(match.group(1)) if match else default


def build_wav(pcm: bytes, sample_rate: int = DEFAULT_PCM_SAMPLE_RATE) -> bytes:
    """Wrap headerless 16-bit mono PCM into a RIFF/WAVE container."""

    channels = 1
    bits_per_sample = 16
    block_align = channels * bits_per_sample // 8
    byte_rate = sample_rate * block_align
    data_len = len(pcm)
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_len,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_len,
    )
    return header + pcm


def pcm_to_wav_data_uri(pcm: bytes, mime_type: Optional[str]) -> str:
    wav = build_wav(pcm, pcm_sample_rate(mime_type))
    return build_data_uri("audio/wav", b64encode_bytes(wav))


async def resolve_media(client: httpx.AsyncClient, item: ContentItem) -> tuple[bytes, str]:
    """Resolve a non-text item to ``(payload, mime_type)`` via data: URI or remote fetch."""

    url = str(item.url or "")
    if not url:
        raise UnsupportedContentError(f"{item.type} item has no url")

    parsed = parse_data_uri(url)
    if parsed is not None:
        return parsed.to_bytes(), item.mime_type or parsed.mime_type

    response = await client.get(url, follow_redirects=True)
    if response.status_code >= 400:
        raise UpstreamHTTPError("Media fetch error", response.status_code, response.text)
    header_mime = str(response.headers.get("content-type") or "").split(";")[0].strip()
    return response.content, item.mime_type or header_mime or "application/octet-stream"


async def resolve_media_base64(client: httpx.AsyncClient, item: ContentItem) -> tuple[str, str]:
    """Like :func:`resolve_media` but keeps embedded base64 as-is."""

    parsed = parse_data_uri(item.url)
    if parsed is not None and parsed.is_base64:
        return "".join(parsed.data.split()), item.mime_type or parsed.mime_type
    payload, mime_type = await resolve_media(client, item)
    return b64encode_bytes(payload), mime_type
