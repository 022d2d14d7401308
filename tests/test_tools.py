from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.services.chat_service import augment_with_search
from app.services.providers.types import ChatMessage
from app.services.tools import execute_tool, get_enabled_tools, resolve_tools
from app.services.tools.web_search import WebSearchTool
from app.services.web_search_service import (
    WebSearchResponse,
    WebSearchResult,
    WebSearchService,
    format_search_context,
    get_web_search_service,
)
from app.settings.config import Settings


def _mock_response(status_code: int, payload=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json = MagicMock(return_value=payload)
    return response


def _install(mock_httpx: MagicMock, response: MagicMock) -> AsyncMock:
    request = AsyncMock(return_value=response)
    mock_httpx.return_value.__aenter__.return_value.request = request
    return request


@pytest.mark.asyncio
async def test_execute_unknown_tool():
    result = await execute_tool("teleport", {})

    assert result.success is False
    assert result.error == "Unknown tool: teleport"


@pytest.mark.asyncio
async def test_web_search_requires_query():
    result = await WebSearchTool(WebSearchService(serper_api_key="k")).execute({})

    assert result.to_dict() == {"success": False, "error": "Missing query parameter"}


@pytest.mark.asyncio
async def test_serper_search_returns_trimmed_results():
    payload = {
        "organic": [
            {"title": "Cats", "link": "https://example.com/cats", "snippet": "All   about\ncats"},
            {"title": "No link"},
        ]
    }
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        request = _install(mock_httpx, _mock_response(200, payload))
        tool = WebSearchTool(WebSearchService(search_type="serper", serper_api_key="serper-key"))

        result = await tool.execute({"query": "cats", "num_results": 3})

    assert result.success is True
    assert result.data == {
        "query": "cats",
        "results": [{"title": "Cats", "url": "https://example.com/cats", "snippet": "All about cats"}],
        "resultCount": 1,
    }
    method, url = request.await_args.args
    assert method == "POST"
    assert url == "https://google.serper.dev/search"
    assert request.await_args.kwargs["headers"]["X-API-KEY"] == "serper-key"
    assert request.await_args.kwargs["json"] == {"q": "cats", "num": 3}


@pytest.mark.asyncio
async def test_google_search_uses_custom_search_params():
    payload = {"items": [{"title": "Dogs", "link": "https://example.com/dogs", "snippet": "woof"}]}
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        request = _install(mock_httpx, _mock_response(200, payload))
        service = WebSearchService(search_type="google", google_api_key="g-key", google_engine_id="cx-1")

        response = await service.search("dogs", num_results=50)

    assert response.provider == "google"
    assert response.results[0].title == "Dogs"
    params = request.await_args.kwargs["params"]
    assert params == {"key": "g-key", "cx": "cx-1", "q": "dogs", "num": "10"}


@pytest.mark.asyncio
async def test_search_results_are_cached():
    payload = {"organic": [{"title": "A", "link": "https://a.example", "snippet": ""}]}
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        request = _install(mock_httpx, _mock_response(200, payload))
        service = WebSearchService(serper_api_key="k")

        await service.search("same")
        await service.search("SAME")

    assert request.await_count == 1


@pytest.mark.asyncio
async def test_search_failure_is_reported_not_raised():
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        _install(mock_httpx, _mock_response(500, text="quota"))
        tool = WebSearchTool(WebSearchService(serper_api_key="k"))

        result = await tool.execute({"query": "x"})

    assert result.success is False
    assert result.error == "Serper API error: 500 quota"


@pytest.mark.asyncio
async def test_search_network_error_is_reported():
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        mock_httpx.return_value.__aenter__.return_value.request = AsyncMock(
            side_effect=httpx.ConnectError("unreachable")
        )
        tool = WebSearchTool(WebSearchService(serper_api_key="k"))

        result = await tool.execute({"query": "x"})

    assert result.success is False
    assert result.error == "unreachable"


@pytest.mark.asyncio
async def test_missing_search_key_is_reported():
    result = await WebSearchTool(WebSearchService(serper_api_key="")).execute({"query": "x"})

    assert result.success is False
    assert result.error == "Serper API not configured"


@pytest.mark.asyncio
async def test_augment_with_search_inserts_context_before_last_message():
    payload = {"organic": [{"title": "News", "link": "https://n.example", "snippet": "today"}]}
    messages = [ChatMessage(role="user", content="earlier"), ChatMessage(role="user", content="latest news")]
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        request = _install(mock_httpx, _mock_response(200, payload))

        augmented = await augment_with_search(messages, WebSearchService(serper_api_key="k"))

    assert request.await_args.kwargs["json"]["q"] == "latest news"
    assert [m.role for m in augmented] == ["user", "system", "user"]
    assert "[1] News" in augmented[1].content
    assert "URL: https://n.example" in augmented[1].content
    assert augmented[-1] is messages[-1]


@pytest.mark.asyncio
async def test_augment_with_search_keeps_messages_on_failure():
    messages = [ChatMessage(role="user", content="q")]

    augmented = await augment_with_search(messages, WebSearchService(serper_api_key=""))

    assert augmented is messages


def test_format_search_context_numbers_results():
    text = format_search_context(
        WebSearchResponse(
            provider="serper",
            query="q",
            results=[WebSearchResult("One", "https://1.example", "first"), WebSearchResult("Two", "https://2.example")],
        )
    )

    assert text.splitlines()[0] == 'Web search results for "q":'
    assert "[1] One" in text and "[2] Two" in text


def test_enabled_tools_follow_settings():
    settings = Settings(tool_web_search_enabled=True, tool_code_interpreter_enabled=False)

    assert [t.id for t in get_enabled_tools(settings)] == ["web_search"]
    assert [t.id for t in resolve_tools(["code_interpreter", "nope", "web_search"])] == [
        "code_interpreter",
        "web_search",
    ]


@pytest.fixture
def shared_search_service():
    get_web_search_service.cache_clear()
    yield get_web_search_service()
    get_web_search_service.cache_clear()


@pytest.mark.asyncio
async def test_repeated_tool_calls_hit_shared_search_cache(shared_search_service):
    payload = {"organic": [{"title": "Same", "link": "https://example.com/same", "snippet": "s"}]}
    with patch("app.services.web_search_service.httpx.AsyncClient") as mock_httpx:
        request = _install(mock_httpx, _mock_response(200, payload))

        first = await execute_tool("web_search", {"query": "same"})
        second = await execute_tool("web_search", {"query": "same"})

    assert first.success is True
    assert second.to_dict() == first.to_dict()
    assert request.await_count == 1
    assert WebSearchTool()._service is shared_search_service
