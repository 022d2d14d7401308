from __future__ import annotations

import base64
import struct

import httpx
import pytest

from app.services.providers.errors import UnsupportedContentError, UpstreamHTTPError
from app.services.providers.media import (
    b64decode_text,
    b64encode_bytes,
    build_wav,
    content_to_text,
    extract_images,
    mime_to_extension,
    parse_data_uri,
    pcm_sample_rate,
    pcm_to_wav_data_uri,
    resolve_media,
    resolve_media_base64,
)
from app.services.providers.types import ContentItem


def test_extract_images_keeps_only_image_urls():
    content = (
        ContentItem(type="text", text="look"),
        ContentItem(type="image", url="https://img.example/a.png"),
        ContentItem(type="image"),
        ContentItem(type="file", url="data:application/pdf;base64,JVBE", mime_type="application/pdf"),
        ContentItem(type="image", url="data:image/png;base64,AAAA"),
    )

    assert extract_images(content) == ["https://img.example/a.png", "data:image/png;base64,AAAA"]
    assert extract_images("just text") == []
    assert extract_images(None) == []


def test_content_to_text_joins_text_items_only():
    content = (
        ContentItem(type="text", text="first"),
        ContentItem(type="image", url="data:image/png;base64,AAAA"),
        ContentItem(type="text", text="second"),
    )

    assert content_to_text(content) == "first\nsecond"
    assert content_to_text("plain") == "plain"
    assert content_to_text(None) == ""


def test_base64_helpers_accept_missing_padding_and_whitespace():
    raw = b"\x00\x01hello\xff"
    encoded = b64encode_bytes(raw)

    assert b64decode_text(encoded) == raw
    assert b64decode_text(encoded.rstrip("=")) == raw
    assert b64decode_text(f" {encoded[:4]}\n{encoded[4:]} ") == raw


def test_b64decode_rejects_garbage():
    with pytest.raises(UnsupportedContentError):
        b64decode_text("a")


def test_parse_data_uri_extracts_mime_and_payload():
    parsed = parse_data_uri("data:image/jpeg;base64,/9j/AA==")

    assert parsed is not None
    assert parsed.mime_type == "image/jpeg"
    assert parsed.data == "/9j/AA=="
    assert parsed.is_base64 is True
    assert parsed.to_bytes() == base64.b64decode("/9j/AA==")


def test_parse_data_uri_handles_parameters_and_plain_text():
    pcm = parse_data_uri("data:audio/L16;rate=16000;base64,AAE=")
    text = parse_data_uri("data:text/plain,hello")

    assert pcm is not None and pcm.mime_type == "audio/L16" and pcm.is_base64
    assert text is not None and text.is_base64 is False and text.to_bytes() == b"hello"
    assert parse_data_uri("https://example.com/a.png") is None


def test_build_wav_header_fields():
    pcm = b"\x01\x00" * 50
    wav = build_wav(pcm, 16000)

    assert len(wav) == 44 + len(pcm)
    riff, riff_size, wave, fmt, fmt_size, audio_format, channels, rate, byte_rate, align, bits = struct.unpack(
        "<4sI4s4sIHHIIHH", wav[:36]
    )
    data_tag, data_len = struct.unpack("<4sI", wav[36:44])
    assert (riff, wave, fmt, data_tag) == (b"RIFF", b"WAVE", b"fmt ", b"data")
    assert riff_size == 36 + len(pcm)
    assert (fmt_size, audio_format, channels, bits) == (16, 1, 1, 16)
    assert rate == 16000
    assert byte_rate == 32000
    assert align == 2
    assert data_len == len(pcm)
    assert wav[44:] == pcm


def test_pcm_sample_rate_from_mime():
    assert pcm_sample_rate("audio/L16;codec=pcm;rate=16000") == 16000
    assert pcm_sample_rate("audio/pcm") == 24000


def test_pcm_to_wav_data_uri_wraps_as_audio_wav():
    uri = pcm_to_wav_data_uri(b"\x00\x00\x01\x00", "audio/L16;rate=24000")
    parsed = parse_data_uri(uri)

    assert parsed is not None and parsed.mime_type == "audio/wav"
    assert parsed.to_bytes()[:4] == b"RIFF"


def test_mime_to_extension_defaults_to_png():
    assert mime_to_extension("image/jpeg") == "jpg"
    assert mime_to_extension("IMAGE/WEBP") == "webp"
    assert mime_to_extension("application/x-unknown") == "png"


@pytest.mark.asyncio
async def test_resolve_media_prefers_embedded_payload_without_network():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no fetch expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        payload, mime = await resolve_media(client, ContentItem(type="image", url="data:image/png;base64,AAEC"))

    assert payload == b"\x00\x01\x02"
    assert mime == "image/png"


@pytest.mark.asyncio
async def test_resolve_media_fetches_remote_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://cdn.example.com/cat.jpg"
        return httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg; charset=binary"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        b64, mime = await resolve_media_base64(client, ContentItem(type="image", url="https://cdn.example.com/cat.jpg"))

    assert base64.b64decode(b64) == b"jpeg-bytes"
    assert mime == "image/jpeg"


@pytest.mark.asyncio
async def test_resolve_media_raises_on_fetch_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="missing")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await resolve_media(client, ContentItem(type="audio", url="https://cdn.example.com/a.mp3"))

    assert exc_info.value.status_code == 404
