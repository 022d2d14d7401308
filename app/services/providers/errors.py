"""Provider error taxonomy."""

from __future__ import annotations

import json
from typing import Any, Optional

_DETAIL_MAX_CHARS = 240


class ProviderError(RuntimeError):
    """Base error for upstream provider calls.

    ``code`` is a stable machine-readable identifier; ``str(exc)`` is the
    human-readable message surfaced to the browser.
    """

    code: str = "provider_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        if code:
            self.code = code
        self.status_code = status_code
        self.body = body


class UpstreamHTTPError(ProviderError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, label: str, status_code: int, body: str) -> None:
        detail = format_upstream_error(body)
        super().__init__(
            f"{label}: {status_code} - {detail}",
            code=f"upstream_http_{status_code}",
            status_code=status_code,
            body=body,
        )


class UpstreamLogicalError(ProviderError):
    """Upstream answered 2xx but the payload signals failure."""

    code = "upstream_invalid_response"


class UnknownProviderError(ProviderError):
    code = "unknown_provider"

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Unknown provider: {provider_id}")
        self.provider_id = provider_id


class UnsupportedContentError(ProviderError):
    """A content item the target vendor cannot accept."""

    code = "unsupported_content"


def format_upstream_error(raw: Any) -> str:
    """Best-effort extraction of a short error text from an upstream body."""

    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    text = str(raw or "").strip()
    if not text:
        return "unknown_error"
    try:
        data = json.loads(text)
    except ValueError:
        return text[:_DETAIL_MAX_CHARS]

    if isinstance(data, list) and data and isinstance(data[0], dict):
        # Gemini 有时把错误包在数组里
        data = data[0]
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            msg = err.get("message") or err.get("error") or err.get("type")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()[:_DETAIL_MAX_CHARS]
        if isinstance(err, str) and err.strip():
            return err.strip()[:_DETAIL_MAX_CHARS]
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict) and isinstance(first.get("message"), str):
                return first["message"].strip()[:_DETAIL_MAX_CHARS]
        msg = data.get("message") or data.get("msg") or data.get("detail")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()[:_DETAIL_MAX_CHARS]
    return json.dumps(data, ensure_ascii=False)[:_DETAIL_MAX_CHARS]
