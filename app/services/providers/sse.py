"""SSE parsing helpers (provider adapters)."""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterator
from typing import Optional

import httpx


class SSELineBuffer:
    """Incremental line splitter over raw byte chunks.

    Bytes are decoded incrementally (a UTF-8 sequence split across TCP reads is
    held back), split on ``\\n``, and the trailing partial segment is retained
    until the next ``feed``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line[:-1] if line.endswith("\r") else line for line in lines]

    def flush(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        if rest.endswith("\r"):
            rest = rest[:-1]
        return [rest] if rest else []


async def iter_sse_lines(response: httpx.Response) -> AsyncIterator[str]:
    buffer = SSELineBuffer()
    async for chunk in response.aiter_bytes():
        for line in buffer.feed(chunk):
            yield line
    for line in buffer.flush():
        yield line


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[tuple[Optional[str], str]]:
    """Iterate ``data:`` lines as ``(event_name, data_text)``.

    Each data line is yielded on its own so that one malformed line cannot
    poison its neighbours; the event name sticks until the next blank line.
    """

    current_event: Optional[str] = None
    async for line in iter_sse_lines(response):
        if not line:
            current_event = None
            continue
        if line.startswith(":"):
            continue
        if line.startswith("event:"):
            current_event = line[len("event:") :].strip() or None
            continue
        if line.startswith("data:"):
            data = line[len("data:") :]
            if data.startswith(" "):
                data = data[1:]
            yield current_event, data
