from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Iterable
from typing import Any, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

# 测试隔离：import app 之前固定环境变量，避免读取本地 .env / 真实密钥
os.environ["ACCESS_PASSWORD"] = ""
os.environ["DEBUG"] = "false"
os.environ["LOG_TO_FILE"] = "false"
os.environ["HISTORY_LIMIT"] = "40"
os.environ["WEB_SEARCH_ENABLED"] = "false"
os.environ["SEARCH_API_TYPE"] = "serper"
os.environ["SERPER_API_KEY"] = "serper-test-key"
os.environ["TOOL_WEB_SEARCH_ENABLED"] = "true"
os.environ["TOOL_CODE_INTERPRETER_ENABLED"] = "false"
os.environ["TITLE_SUMMARY_PROVIDER"] = "openai"
os.environ["TITLE_SUMMARY_MODEL"] = "gpt-4o-mini"

os.environ["OPENAI_ENABLED"] = "true"
os.environ["OPENAI_BASE_URL"] = "https://api.openai.test/v1"
os.environ["OPENAI_API_KEY"] = "sk-test-openai"
os.environ["OPENAI_MODELS"] = "gpt-4o=GPT-4o<fc:vision>,gpt-4o-mini=GPT-4o Mini"
os.environ["CLOUDFLARE_ENABLED"] = "true"
os.environ["CLOUDFLARE_BASE_URL"] = "https://api.cloudflare.test/client/v4/accounts/acc/ai"
os.environ["CLOUDFLARE_API_KEY"] = "cf-test-key"
os.environ["CLOUDFLARE_MODELS"] = "@cf/myshell-ai/melotts=MeloTTS<tts>"
for _prefix in ("GOOGLE", "ANTHROPIC", "DEEPSEEK", "QWEN"):
    os.environ[f"{_prefix}_ENABLED"] = "false"

from app.settings.config import get_settings

get_settings.cache_clear()

from app import app as fastapi_app
from app.services.providers import upstream


class RecordingByteStream(httpx.AsyncByteStream):
    """Upstream body fed in arbitrary byte chunks; remembers whether it was closed."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = list(chunks)
        self.served = 0
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            self.served += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class FakeUpstream:
    """Queue of canned upstream responses served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.streams: list[RecordingByteStream] = []
        self._queue: list[httpx.Response] = []

    def reply_json(self, payload: Any, *, status_code: int = 200) -> None:
        self._queue.append(httpx.Response(status_code, json=payload))

    def reply_text(self, text: str, *, status_code: int = 200, content_type: str = "text/plain") -> None:
        self._queue.append(httpx.Response(status_code, text=text, headers={"content-type": content_type}))

    def reply_bytes(self, content: bytes, *, content_type: str) -> None:
        self._queue.append(httpx.Response(200, content=content, headers={"content-type": content_type}))

    def reply_sse(self, chunks: Iterable[bytes | str], *, status_code: int = 200) -> RecordingByteStream:
        stream = RecordingByteStream(c.encode("utf-8") if isinstance(c, str) else c for c in chunks)
        self.streams.append(stream)
        self._queue.append(
            httpx.Response(status_code, headers={"content-type": "text/event-stream"}, stream=stream)
        )
        return stream

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._queue:
            raise AssertionError(f"unexpected upstream call: {request.method} {request.url}")
        return self._queue.pop(0)

    def json_body(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)

    @property
    def last_request(self) -> Optional[httpx.Request]:
        return self.requests[-1] if self.requests else None


@pytest.fixture(autouse=True)
def _block_real_upstream(monkeypatch: pytest.MonkeyPatch) -> None:
    """默认禁用真实外网调用（用例通过 fake_upstream 自行提供响应）。"""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"real upstream call attempted: {request.url}")

    monkeypatch.setattr(
        upstream,
        "open_client",
        lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(refuse), timeout=timeout),
    )


@pytest.fixture
def fake_upstream(monkeypatch: pytest.MonkeyPatch) -> FakeUpstream:
    fake = FakeUpstream()
    monkeypatch.setattr(
        upstream,
        "open_client",
        lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(fake.handler), timeout=timeout),
    )
    return fake


@pytest.fixture
def client() -> TestClient:
    with TestClient(fastapi_app) as client:
        yield client
