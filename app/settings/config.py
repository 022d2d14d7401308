"""应用配置与环境变量加载逻辑。"""

import json
from functools import lru_cache
from typing import Iterable, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """集中式配置定义：服务参数、上游供应商、工具开关与联网搜索。"""

    app_name: str = Field(default="Polychat Gateway", alias="APP_NAME")
    app_description: str = Field(default="多供应商对话网关", alias="APP_DESCRIPTION")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_to_file: bool = Field(default=False, alias="LOG_TO_FILE")
    log_file_path: str = Field(default="logs/app.log", alias="LOG_FILE_PATH")

    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # 访问密码：为空表示不启用密码门
    access_password: Optional[str] = Field(default=None, alias="ACCESS_PASSWORD")

    # 上游调用超时（由路由层传入适配器；适配器本身不设默认值）
    http_timeout_seconds: float = Field(default=120.0, alias="HTTP_TIMEOUT_SECONDS")
    history_limit: int = Field(default=50, alias="HISTORY_LIMIT")

    # 联网搜索
    web_search_enabled: bool = Field(default=False, alias="WEB_SEARCH_ENABLED")
    search_api_type: str = Field(default="serper", alias="SEARCH_API_TYPE")
    serper_api_key: Optional[str] = Field(default=None, alias="SERPER_API_KEY")
    google_search_api_key: Optional[str] = Field(default=None, alias="GOOGLE_SEARCH_API_KEY")
    google_search_engine_id: Optional[str] = Field(default=None, alias="GOOGLE_SEARCH_ENGINE_ID")
    search_timeout_seconds: float = Field(default=10.0, alias="SEARCH_TIMEOUT_SECONDS")

    # 标题总结
    title_summary_provider: str = Field(default="openai", alias="TITLE_SUMMARY_PROVIDER")
    title_summary_model: str = Field(default="gpt-4o-mini", alias="TITLE_SUMMARY_MODEL")

    # 内置工具开关（TOOL_<ID>_ENABLED）
    tool_web_search_enabled: bool = Field(default=False, alias="TOOL_WEB_SEARCH_ENABLED")
    tool_code_interpreter_enabled: bool = Field(default=False, alias="TOOL_CODE_INTERPRETER_ENABLED")

    # 预设角色 JSON 文件；为空时使用内置角色列表
    roles_file: Optional[str] = Field(default=None, alias="ROLES_FILE")

    # 供应商配置：<PREFIX>_ENABLED / _BASE_URL / _API_KEY / _MODELS
    openai_enabled: bool = Field(default=False, alias="OPENAI_ENABLED")
    openai_base_url: str = Field(default="", alias="OPENAI_BASE_URL")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_models: str = Field(default="", alias="OPENAI_MODELS")

    google_enabled: bool = Field(default=False, alias="GOOGLE_ENABLED")
    google_base_url: str = Field(default="", alias="GOOGLE_BASE_URL")
    google_api_key: str = Field(default="", alias="GOOGLE_API_KEY")
    google_models: str = Field(default="", alias="GOOGLE_MODELS")

    anthropic_enabled: bool = Field(default=False, alias="ANTHROPIC_ENABLED")
    anthropic_base_url: str = Field(default="", alias="ANTHROPIC_BASE_URL")
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    anthropic_models: str = Field(default="", alias="ANTHROPIC_MODELS")

    deepseek_enabled: bool = Field(default=False, alias="DEEPSEEK_ENABLED")
    deepseek_base_url: str = Field(default="", alias="DEEPSEEK_BASE_URL")
    deepseek_api_key: str = Field(default="", alias="DEEPSEEK_API_KEY")
    deepseek_models: str = Field(default="", alias="DEEPSEEK_MODELS")

    qwen_enabled: bool = Field(default=False, alias="QWEN_ENABLED")
    qwen_base_url: str = Field(default="", alias="QWEN_BASE_URL")
    qwen_api_key: str = Field(default="", alias="QWEN_API_KEY")
    qwen_models: str = Field(default="", alias="QWEN_MODELS")

    cloudflare_enabled: bool = Field(default=False, alias="CLOUDFLARE_ENABLED")
    cloudflare_base_url: str = Field(default="", alias="CLOUDFLARE_BASE_URL")
    cloudflare_api_key: str = Field(default="", alias="CLOUDFLARE_API_KEY")
    cloudflare_models: str = Field(default="", alias="CLOUDFLARE_MODELS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
        populate_by_name=True,
    )

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> List[str]:
        """支持逗号分隔的字符串、JSON 数组或直接传入列表。"""
        if value in (None, "", []):
            return ["*"]
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                try:
                    data = json.loads(text)
                    if isinstance(data, list):
                        items = [str(item).strip() for item in data if str(item).strip()]
                        return items or ["*"]
                except json.JSONDecodeError:
                    pass
            items = [item.strip() for item in text.split(",") if item.strip()]
            return items or ["*"]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        return ["*"]

    @field_validator("search_api_type", mode="before")
    @classmethod
    def _normalize_search_type(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        return text or "serper"

    def tool_enabled(self, tool_id: str) -> bool:
        return bool(getattr(self, f"tool_{str(tool_id or '').strip().lower()}_enabled", False))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """使用 LRU 缓存避免 BaseSettings 反复解析。"""

    return Settings()
