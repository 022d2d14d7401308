from __future__ import annotations

import httpx
import pytest

from app.services.providers.sse import SSELineBuffer, iter_sse_data


def test_line_buffer_keeps_partial_tail_until_newline():
    buffer = SSELineBuffer()

    assert buffer.feed(b"data: he") == []
    assert buffer.feed(b"llo\r\ndata: wor") == ["data: hello"]
    assert buffer.feed(b"ld\n\n") == ["data: world", ""]
    assert buffer.flush() == []


def test_line_buffer_handles_utf8_split_across_reads():
    encoded = "data: 你好\n".encode("utf-8")
    buffer = SSELineBuffer()

    first = buffer.feed(encoded[:8])
    second = buffer.feed(encoded[8:])

    assert first == []
    assert second == ["data: 你好"]


def test_line_buffer_flush_returns_unterminated_line():
    buffer = SSELineBuffer()
    buffer.feed(b"data: [DONE]")

    assert buffer.flush() == ["data: [DONE]"]


@pytest.mark.asyncio
async def test_iter_sse_data_tracks_event_names_and_skips_comments():
    body = [
        b": keep-alive\n",
        b"event: content_block_delta\ndata: {\"a\":1}\n\n",
        b"data: plain\n",
        b"\n",
        b"data:no-space",
    ]
    response = httpx.Response(200, stream=httpx.ByteStream(b"".join(body)))

    items = [item async for item in iter_sse_data(response)]

    assert items == [
        ("content_block_delta", '{"a":1}'),
        (None, "plain"),
        (None, "no-space"),
    ]
