"""Provider / model registry（环境变量 -> 已启用供应商与模型能力）。

``<PREFIX>_MODELS`` 格式：``model-id=显示名称<cap:cap>``，逗号分隔，例如::

    OPENAI_MODELS=gpt-4o=GPT-4o<fc:vision>,gpt-4o-mini=GPT-4o Mini<fc:vision>
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from app.services.providers.types import ModelCapabilities
from app.settings.config import Settings, get_settings

logger = logging.getLogger(__name__)

_MODEL_PATTERN = re.compile(r"^([^=]+)=([^<]+)(?:<([^>]*)>)?$")

_CAPABILITY_TOKENS = {
    "fc": "function_call",
    "vision": "vision",
    "file": "file",
    "reasoning": "reasoning",
    "imageoutput": "image_output",
    "search": "search",
    "tts": "tts",
    "asr": "asr",
    "stt": "stt",
}


@dataclass(frozen=True, slots=True)
class ProviderSpec:
    id: str
    name: str
    icon: str
    env_prefix: str


KNOWN_PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec("openai", "OpenAI", "/icons/openai.svg", "openai"),
    ProviderSpec("google", "Google", "/icons/google.svg", "google"),
    ProviderSpec("anthropic", "Anthropic", "/icons/anthropic.svg", "anthropic"),
    ProviderSpec("deepseek", "DeepSeek", "/icons/deepseek.svg", "deepseek"),
    ProviderSpec("qwen", "Qwen", "/icons/qwen.svg", "qwen"),
    ProviderSpec("cloudflare", "Cloudflare Workers AI", "/icons/cloudflare.svg", "cloudflare"),
)


@dataclass(frozen=True, slots=True)
class ModelConfig:
    id: str
    name: str
    capabilities: ModelCapabilities = field(default_factory=ModelCapabilities)

    def to_public_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "capabilities": self.capabilities.to_dict()}


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    id: str
    name: str
    enabled: bool
    base_url: str
    api_key: str
    models: tuple[ModelConfig, ...] = ()
    icon: Optional[str] = None

    def to_public_dict(self) -> dict[str, Any]:
        """对外视图：绝不包含 api_key / base_url。"""

        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "models": [m.to_public_dict() for m in self.models],
        }


def parse_capabilities(raw: Optional[str]) -> ModelCapabilities:
    flags: dict[str, bool] = {}
    for token in str(raw or "").split(":"):
        attr = _CAPABILITY_TOKENS.get(token.strip().lower())
        if attr:
            flags[attr] = True
    return ModelCapabilities(**flags)


def parse_model_config(raw: str) -> Optional[ModelConfig]:
    match = _MODEL_PATTERN.match(str(raw or "").strip())
    if not match:
        return None
    model_id, name, caps = match.groups()
    return ModelConfig(id=model_id.strip(), name=name.strip(), capabilities=parse_capabilities(caps))


def parse_models(raw: Optional[str]) -> list[ModelConfig]:
    models: list[ModelConfig] = []
    for entry in str(raw or "").split(","):
        if not entry.strip():
            continue
        model = parse_model_config(entry)
        if model is None:
            logger.warning("[MODEL_CONFIG_SKIPPED] entry=%s", entry.strip()[:120])
            continue
        models.append(model)
    return models


def get_provider_configs(settings: Optional[Settings] = None) -> list[ProviderConfig]:
    """只返回已启用的供应商。"""

    settings = settings or get_settings()
    providers: list[ProviderConfig] = []
    for spec in KNOWN_PROVIDERS:
        if not getattr(settings, f"{spec.env_prefix}_enabled", False):
            continue
        providers.append(
            ProviderConfig(
                id=spec.id,
                name=spec.name,
                enabled=True,
                base_url=str(getattr(settings, f"{spec.env_prefix}_base_url", "") or ""),
                api_key=str(getattr(settings, f"{spec.env_prefix}_api_key", "") or ""),
                models=tuple(parse_models(getattr(settings, f"{spec.env_prefix}_models", ""))),
                icon=spec.icon,
            )
        )
    return providers


def get_provider_by_id(provider_id: str, settings: Optional[Settings] = None) -> Optional[ProviderConfig]:
    for provider in get_provider_configs(settings):
        if provider.id == provider_id:
            return provider
    return None


def get_model_by_id(
    model_id: str,
    provider_id: str,
    settings: Optional[Settings] = None,
) -> Optional[ModelConfig]:
    provider = get_provider_by_id(provider_id, settings)
    if provider is None:
        return None
    for model in provider.models:
        if model.id == model_id:
            return model
    return None
