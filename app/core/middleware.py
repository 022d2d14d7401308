"""请求级上下文：X-Request-Id 透传、日志绑定与访问日志。

上游调用（``upstream.json_headers``）会把当前 request id 原样带给供应商，
所以外部传入的值必须先经过 :func:`normalize_request_id` 过滤。
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar, Token

from loguru import logger as loguru_logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER_NAME = "X-Request-Id"

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

logger = logging.getLogger(__name__)


def normalize_request_id(value: str | None) -> str:
    """合法的外部 id 原样保留，否则（含空值、超长、含空白或引号）重新生成。"""

    text = str(value or "").strip()
    if text and _REQUEST_ID_PATTERN.match(text):
        return text
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER_NAME)
        request_id = normalize_request_id(incoming)
        if incoming and incoming.strip() != request_id:
            logger.warning("[REQUEST_ID_REPLACED] path=%s new=%s", request.url.path, request_id)

        token = _request_id_ctx.set(request_id)
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            # loguru extra 随 contextvars 传递到 SSE 生成器与被拦截的标准 logging
            with loguru_logger.contextualize(request_id=request_id):
                response = await call_next(request)
                logger.info(
                    "[HTTP] %s %s status=%s elapsed_ms=%.1f",
                    request.method,
                    request.url.path,
                    response.status_code,
                    (time.perf_counter() - started) * 1000,
                )
        finally:
            _request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER_NAME] = request_id
        return response


def get_current_request_id() -> str | None:
    return _request_id_ctx.get()


def set_current_request_id(request_id: str) -> Token[str | None]:
    """为 SSE 生成器绑定 request_id（生成器可能在中间件返回后才继续执行）。"""

    return _request_id_ctx.set(request_id)


__all__ = [
    "REQUEST_ID_HEADER_NAME",
    "RequestIDMiddleware",
    "get_current_request_id",
    "normalize_request_id",
    "set_current_request_id",
]
