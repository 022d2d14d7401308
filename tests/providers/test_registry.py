from __future__ import annotations

import pytest

from app.services.providers import (
    AnthropicMessagesAdapter,
    CloudflareWorkersAIAdapter,
    GeminiGenerateContentAdapter,
    OpenAIChatCompletionsAdapter,
    UnknownProviderError,
    get_adapter,
    is_provider_supported,
)


@pytest.mark.parametrize(
    ("provider_id", "adapter_cls"),
    [
        ("openai", OpenAIChatCompletionsAdapter),
        ("deepseek", OpenAIChatCompletionsAdapter),
        ("qwen", OpenAIChatCompletionsAdapter),
        ("anthropic", AnthropicMessagesAdapter),
        ("google", GeminiGenerateContentAdapter),
        ("cloudflare", CloudflareWorkersAIAdapter),
    ],
)
def test_get_adapter_maps_provider_to_dialect(provider_id, adapter_cls):
    adapter = get_adapter(provider_id)

    assert isinstance(adapter, adapter_cls)
    assert is_provider_supported(provider_id)


def test_get_adapter_returns_fresh_instances():
    assert get_adapter("openai") is not get_adapter("openai")


def test_unknown_provider_raises():
    with pytest.raises(UnknownProviderError) as exc_info:
        get_adapter("mistral")

    assert exc_info.value.code == "unknown_provider"
    assert str(exc_info.value) == "Unknown provider: mistral"
    assert not is_provider_supported("mistral")
