"""GET/POST /config：前端配置与访问密码校验。"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status

from app.auth import password_required, verify_access_password
from app.services.provider_registry import get_provider_configs
from app.services.tools import get_enabled_tools
from app.settings.config import get_settings

from .schemas import PasswordRequest

router = APIRouter(tags=["config"])


@router.get("/config")
async def get_config() -> Dict[str, Any]:
    settings = get_settings()
    return {
        # 公开视图不含 api_key / base_url
        "providers": [provider.to_public_dict() for provider in get_provider_configs(settings)],
        "tools": [tool.to_dict() for tool in get_enabled_tools(settings)],
        "requirePassword": password_required(settings),
        "historyLimit": settings.history_limit,
        "webSearchEnabled": settings.web_search_enabled,
    }


@router.post("/config")
async def verify_password(payload: PasswordRequest) -> Dict[str, Any]:
    if verify_access_password(payload.password, get_settings()):
        return {"valid": True}
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "invalid_password", "message": "Invalid password", "valid": False},
    )
