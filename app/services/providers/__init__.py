"""Upstream provider adapters (provider id -> wire protocol)."""

from __future__ import annotations

from .anthropic_messages import AnthropicMessagesAdapter
from .base import ProviderAdapter
from .cloudflare_workers_ai import CloudflareWorkersAIAdapter
from .errors import (
    ProviderError,
    UnknownProviderError,
    UnsupportedContentError,
    UpstreamHTTPError,
    UpstreamLogicalError,
)
from .gemini_generate_content import GeminiGenerateContentAdapter
from .openai_chat_completions import OpenAIChatCompletionsAdapter
from .types import AdapterRequest, AdapterResponse, ChatMessage, ContentItem, ModelCapabilities, StreamChunk

# 多个 provider 可以共用同一协议实现（DeepSeek / Qwen 走 OpenAI 兼容协议）
_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "openai": OpenAIChatCompletionsAdapter,
    "deepseek": OpenAIChatCompletionsAdapter,
    "qwen": OpenAIChatCompletionsAdapter,
    "anthropic": AnthropicMessagesAdapter,
    "google": GeminiGenerateContentAdapter,
    "cloudflare": CloudflareWorkersAIAdapter,
}


def get_adapter(provider_id: str) -> ProviderAdapter:
    """Fresh adapter instance for ``provider_id``; adapters hold no shared state."""

    adapter_cls = _ADAPTERS.get(str(provider_id or "").strip().lower())
    if adapter_cls is None:
        raise UnknownProviderError(provider_id)
    return adapter_cls()


def is_provider_supported(provider_id: str) -> bool:
    return str(provider_id or "").strip().lower() in _ADAPTERS


__all__ = [
    "AdapterRequest",
    "AdapterResponse",
    "AnthropicMessagesAdapter",
    "ChatMessage",
    "CloudflareWorkersAIAdapter",
    "ContentItem",
    "GeminiGenerateContentAdapter",
    "ModelCapabilities",
    "OpenAIChatCompletionsAdapter",
    "ProviderAdapter",
    "ProviderError",
    "StreamChunk",
    "UnknownProviderError",
    "UnsupportedContentError",
    "UpstreamHTTPError",
    "UpstreamLogicalError",
    "get_adapter",
    "is_provider_supported",
]
