"""Web 搜索服务（Serper / Google Custom Search）。"""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

import httpx

from app.settings.config import Settings, get_settings

SERPER_SEARCH_URL = "https://google.serper.dev/search"
GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


class WebSearchError(RuntimeError):
    code: str

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


def _compact_text(value: str, *, max_len: int) -> str:
    text = str(value or "").strip()
    if not text:
        return ""
    text = " ".join(text.split())
    if max_len > 0 and len(text) > max_len:
        return text[: max_len - 1].rstrip() + "…"
    return text


@dataclass(frozen=True, slots=True)
class WebSearchResult:
    title: str
    url: str
    snippet: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url, "snippet": self.snippet}


@dataclass(frozen=True, slots=True)
class WebSearchResponse:
    provider: str
    query: str
    results: list[WebSearchResult]

    @property
    def total(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "resultCount": self.total,
        }


class WebSearchService:
    """Web 搜索服务：只在后端执行；结果已做裁剪，带短时缓存。"""

    def __init__(
        self,
        *,
        search_type: str = "serper",
        serper_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        google_engine_id: Optional[str] = None,
        timeout_seconds: float = 10.0,
        cache_ttl_seconds: int = 300,
    ) -> None:
        self._search_type = str(search_type or "serper").strip().lower()
        self._serper_api_key = str(serper_api_key or "").strip()
        self._google_api_key = str(google_api_key or "").strip()
        self._google_engine_id = str(google_engine_id or "").strip()
        self._timeout_seconds = float(timeout_seconds)
        self._cache_ttl_seconds = int(cache_ttl_seconds)
        # key -> (expires_at_epoch_s, response)
        self._cache: dict[str, tuple[float, WebSearchResponse]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebSearchService":
        return cls(
            search_type=settings.search_api_type,
            serper_api_key=settings.serper_api_key,
            google_api_key=settings.google_search_api_key,
            google_engine_id=settings.google_search_engine_id,
            timeout_seconds=settings.search_timeout_seconds,
        )

    def _cache_get(self, key: str) -> Optional[WebSearchResponse]:
        item = self._cache.get(key)
        if not item:
            return None
        expires_at, value = item
        if expires_at <= time.time():
            self._cache.pop(key, None)
            return None
        return value

    def _cache_set(self, key: str, value: WebSearchResponse) -> None:
        ttl = max(self._cache_ttl_seconds, 0)
        if ttl <= 0:
            return
        self._cache[key] = (time.time() + ttl, value)

    async def search(self, query: str, *, num_results: int = 5, snippet_max_len: int = 240) -> WebSearchResponse:
        q = str(query or "").strip()
        if not q:
            raise WebSearchError("query_required", "Missing query parameter")

        k = int(num_results or 5)
        if k <= 0:
            k = 5
        if k > 10:
            k = 10

        cache_key = f"{self._search_type}:{k}:{q.lower()}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        if self._search_type == "google":
            provider = "google"
            items = await self._google(q, k)
        else:
            provider = "serper"
            items = await self._serper(q, k)

        results = [
            WebSearchResult(
                title=_compact_text(str(item.get("title") or ""), max_len=200),
                url=str(item.get("link") or "").strip(),
                snippet=_compact_text(str(item.get("snippet") or ""), max_len=snippet_max_len),
            )
            for item in items
        ]
        out = WebSearchResponse(provider=provider, query=q, results=[r for r in results if r.url][:k])
        self._cache_set(cache_key, out)
        return out

    async def _serper(self, query: str, num: int) -> list[dict[str, Any]]:
        if not self._serper_api_key:
            raise WebSearchError("missing_api_key", "Serper API not configured")
        headers = {"Content-Type": "application/json", "X-API-KEY": self._serper_api_key}
        data = await self._request("POST", SERPER_SEARCH_URL, label="Serper", json={"q": query, "num": num}, headers=headers)
        items = data.get("organic") if isinstance(data, dict) else None
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    async def _google(self, query: str, num: int) -> list[dict[str, Any]]:
        if not self._google_api_key or not self._google_engine_id:
            raise WebSearchError("missing_api_key", "Google Search API not configured")
        params = {"key": self._google_api_key, "cx": self._google_engine_id, "q": query, "num": str(num)}
        data = await self._request("GET", GOOGLE_SEARCH_URL, label="Google Search", params=params)
        items = data.get("items") if isinstance(data, dict) else None
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    async def _request(self, method: str, url: str, *, label: str, **kwargs: Any) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise WebSearchError("network_error", str(exc) or type(exc).__name__) from exc

        if resp.status_code >= 400:
            raise WebSearchError(
                "upstream_error",
                f"{label} API error: {resp.status_code} {_compact_text(resp.text, max_len=200)}".rstrip(),
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise WebSearchError("upstream_invalid_json", f"{label} response is not valid JSON") from exc


@lru_cache(maxsize=1)
def get_web_search_service() -> WebSearchService:
    """进程内共享的搜索服务实例（TTL 缓存随实例存活）。"""

    return WebSearchService.from_settings(get_settings())


def format_search_context(response: WebSearchResponse) -> str:
    """把搜索结果渲染为编号列表，作为 system 消息注入对话。"""

    lines = [f'Web search results for "{response.query}":', ""]
    for index, item in enumerate(response.results, start=1):
        lines.append(f"[{index}] {item.title}")
        lines.append(f"URL: {item.url}")
        if item.snippet:
            lines.append(item.snippet)
        lines.append("")
    lines.append("Use these results when relevant and cite sources by their number.")
    return "\n".join(lines)
