"""全局异常处理。"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.middleware import get_current_request_id
from app.services.providers.errors import ProviderError, UnknownProviderError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_current_request_id() or uuid.uuid4().hex


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """创建统一格式的错误响应。"""

    if request_id is None:
        request_id = get_current_request_id() or uuid.uuid4().hex

    payload: Dict[str, Any] = {
        "status": status_code,
        "code": code,
        "message": message,
        # 前端兼容字段：优先读取 msg / error
        "msg": message,
        "error": message,
        "request_id": request_id,
    }
    payload.update(extra)
    return JSONResponse(status_code=status_code, content=payload, headers=headers or {})


def register_exception_handlers(app: FastAPI) -> None:
    """注册 FastAPI 全局异常处理。"""

    @app.exception_handler(UnknownProviderError)
    async def unknown_provider_handler(request: Request, exc: UnknownProviderError) -> JSONResponse:
        return create_error_response(400, exc.code, str(exc), _request_id(request))

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        request_id = _request_id(request)
        logger.warning(
            "[PROVIDER_ERROR] code=%s upstream_status=%s request_id=%s path=%s",
            exc.code,
            exc.status_code,
            request_id,
            request.url.path,
        )
        return create_error_response(502, exc.code, str(exc), request_id)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return create_error_response(
            422,
            "validation_error",
            "请求参数错误",
            _request_id(request),
            detail=jsonable_encoder(exc.errors()),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail
        extra: Dict[str, Any] = {}
        if isinstance(detail, dict):
            code = str(detail.get("code") or "http_error")
            message = str(detail.get("message") or detail.get("msg") or code.replace("_", " "))
            extra = {k: v for k, v in detail.items() if k not in ("code", "message", "msg", "status", "request_id")}
        else:
            code = "unauthorized" if exc.status_code == 401 else "http_error"
            message = str(detail or code.replace("_", " "))
        return create_error_response(
            exc.status_code, code, message, _request_id(request), headers=exc.headers, **extra
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
        request_id = _request_id(request)
        logger.exception("Unhandled exception request_id=%s path=%s", request_id, request.url.path)
        return create_error_response(500, "internal_server_error", "Internal server error", request_id)
