"""POST /chat：流式（SSE）与非流式对话。"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from app.auth import verify_access_password
from app.core.middleware import get_current_request_id
from app.services.chat_service import augment_with_search, iter_chat_sse, run_chat
from app.services.provider_registry import get_model_by_id, get_provider_by_id
from app.services.providers import get_adapter
from app.services.providers.types import AdapterRequest
from app.services.tools import resolve_tools
from app.services.web_search_service import get_web_search_service
from app.settings.config import get_settings

from .schemas import ChatRequest

router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat")
async def chat(payload: ChatRequest, request: Request):
    settings = get_settings()
    if not verify_access_password(payload.password, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Unauthorized"},
        )

    provider = get_provider_by_id(payload.provider, settings)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "provider_not_found", "message": "Provider not found"},
        )

    adapter = get_adapter(provider.id)
    model = get_model_by_id(payload.model, provider.id, settings)

    messages = payload.to_messages()
    if payload.web_search and settings.web_search_enabled:
        messages = await augment_with_search(messages, get_web_search_service())

    request_id = getattr(request.state, "request_id", None) or get_current_request_id()
    adapter_request = AdapterRequest(
        messages=messages,
        model=payload.model,
        base_url=provider.base_url,
        api_key=provider.api_key,
        reasoning=payload.reasoning,
        tools=resolve_tools(payload.tools) or None,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
        capabilities=model.capabilities if model is not None else None,
        timeout=settings.http_timeout_seconds,
        request_id=request_id,
    )
    logger.info(
        "[CHAT_REQUEST] provider=%s dialect=%s model=%s stream=%s request_id=%s",
        provider.id,
        adapter.dialect,
        payload.model,
        payload.stream,
        request_id,
    )

    if payload.stream:
        return StreamingResponse(
            iter_chat_sse(adapter, adapter_request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    response = await run_chat(adapter, adapter_request)
    return response.to_dict()
