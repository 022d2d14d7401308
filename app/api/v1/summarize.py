"""POST /summarize：用配置的总结模型生成对话标题。"""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx
from fastapi import APIRouter, HTTPException, status

from app.auth import verify_access_password
from app.services.provider_registry import get_provider_by_id
from app.services.providers import ProviderError, get_adapter
from app.services.providers.types import AdapterRequest, ChatMessage
from app.settings.config import get_settings

from .schemas import SummarizeRequest

router = APIRouter(tags=["summarize"])
logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 30
TITLE_MAX_TOKENS = 50
TITLE_SYSTEM_PROMPT = (
    "你是一个标题生成助手。请根据用户的消息内容，生成一个简短的对话标题（不超过15个字符），"
    "直接返回标题文本，不要加引号或其他格式。"
)


@router.post("/summarize")
async def summarize(payload: SummarizeRequest) -> Dict[str, Any]:
    settings = get_settings()
    if not verify_access_password(payload.password, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Unauthorized"},
        )

    fallback = payload.content[:TITLE_MAX_CHARS]
    provider = get_provider_by_id(settings.title_summary_provider, settings)
    if provider is None:
        return {"title": fallback}

    request = AdapterRequest(
        messages=[
            ChatMessage(role="system", content=TITLE_SYSTEM_PROMPT),
            ChatMessage(role="user", content=f"请为以下内容生成一个简短的标题：\n\n{payload.content}"),
        ],
        model=settings.title_summary_model,
        base_url=provider.base_url,
        api_key=provider.api_key,
        max_tokens=TITLE_MAX_TOKENS,
        timeout=settings.http_timeout_seconds,
    )
    try:
        response = await get_adapter(provider.id).chat(request)
    except (ProviderError, httpx.HTTPError) as exc:
        logger.warning("[SUMMARIZE_FAILED] provider=%s error=%s", provider.id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "summarize_failed", "message": "Failed to generate title"},
        ) from exc

    title = (response.content or "").strip() or fallback
    return {"title": title[:TITLE_MAX_CHARS]}
