"""Upstream HTTP plumbing shared by adapters: client factory, URLs, auth headers."""

from __future__ import annotations

import ipaddress
import json
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

from app.core.middleware import REQUEST_ID_HEADER_NAME, get_current_request_id

from .errors import UpstreamHTTPError, UpstreamLogicalError

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1", "host.docker.internal"}

# 用户常把完整 endpoint 填进 base_url；这里只剥离“终点路径”，保留 /v1 之类的版本前缀
_STRIP_SUFFIXES = ("/chat/completions", "/messages")


def open_client(timeout: Optional[float]) -> httpx.AsyncClient:
    """Create a per-call client; callers own it via ``async with``."""

    return httpx.AsyncClient(timeout=timeout)


def normalize_base_url(base_url: str) -> str:
    base = str(base_url or "").strip().rstrip("/")
    lowered = base.lower()
    for suffix in _STRIP_SUFFIXES:
        if lowered.endswith(suffix):
            return base[: -len(suffix)].rstrip("/")
    return base


def join_url(base_url: str, path: str) -> str:
    base = normalize_base_url(base_url)
    return f"{base}/{str(path or '').lstrip('/')}"


def json_headers(request_id: Optional[str] = None, *, stream: bool = False) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if stream:
        # SSE 流式：禁用压缩
        headers["Accept"] = "text/event-stream"
        headers["Accept-Encoding"] = "identity"
    rid = request_id or get_current_request_id()
    if rid:
        headers[REQUEST_ID_HEADER_NAME] = rid
    return headers


def is_local_target(url: str) -> bool:
    """本地/内网目标（自建 OpenAI 兼容代理）。"""

    try:
        host = (urlsplit(str(url or "").strip()).hostname or "").strip().lower()
    except ValueError:
        return False
    if not host:
        return False
    if host in _LOCAL_HOSTS:
        return True
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    return bool(ip.is_private or ip.is_loopback or ip.is_link_local)


def bearer_auth_candidates(api_key: str, url: str) -> list[dict[str, str]]:
    """Auth header candidates in priority order for bearer-style vendors.

    Public hosts get ``Authorization: Bearer`` only; local proxies also get
    ``X-API-Key`` and a raw ``Authorization`` as fallbacks.
    """

    key = str(api_key or "").strip()
    if not key:
        return [{}]
    candidates = [{"Authorization": f"Bearer {key}"}]
    if is_local_target(url):
        candidates.append({"X-API-Key": key})
        candidates.append({"Authorization": key})
    return candidates


def anthropic_auth_headers(api_key: str, version: str) -> dict[str, str]:
    return {"x-api-key": str(api_key or ""), "anthropic-version": version}


def is_retryable_auth_error(status_code: int, body: bytes | str) -> bool:
    """仅对“显式 API key 鉴权失败”的 401 切换下一组鉴权头。"""

    if status_code != 401:
        return False
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    for field in ("error", "message", "detail"):
        value = payload.get(field)
        if isinstance(value, dict):
            value = value.get("message")
        if isinstance(value, str) and ("api key" in value.lower() or "apikey" in value.lower()):
            return True
    return False


def ensure_success(response: httpx.Response, label: str) -> None:
    """Raise :class:`UpstreamHTTPError` for a non-2xx (already read) response."""

    if response.status_code < 400:
        return
    logger.warning(
        "[UPSTREAM_HTTP_ERROR] label=%s status=%s body=%s",
        label,
        response.status_code,
        response.text[:240],
    )
    raise UpstreamHTTPError(label, response.status_code, response.text)


async def read_error(response: httpx.Response, label: str) -> UpstreamHTTPError:
    """Build the error for a streamed non-2xx response (drains its body)."""

    raw = await response.aread()
    body = raw.decode("utf-8", errors="replace")
    logger.warning("[UPSTREAM_HTTP_ERROR] label=%s status=%s body=%s", label, response.status_code, body[:240])
    return UpstreamHTTPError(label, response.status_code, body)


def read_json(response: httpx.Response, label: str) -> Any:
    ensure_success(response, label)
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamLogicalError(f"{label}: upstream returned invalid JSON") from exc
