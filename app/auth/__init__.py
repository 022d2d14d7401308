"""访问密码门（ACCESS_PASSWORD）。"""

from __future__ import annotations

import hmac
from typing import Optional

from app.settings.config import Settings, get_settings


def password_required(settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return bool(str(settings.access_password or ""))


def verify_access_password(password: Optional[str], settings: Optional[Settings] = None) -> bool:
    """未配置密码时放行；否则做常量时间比较。"""

    settings = settings or get_settings()
    expected = str(settings.access_password or "")
    if not expected:
        return True
    return hmac.compare_digest(str(password or "").encode("utf-8"), expected.encode("utf-8"))


__all__ = ["password_required", "verify_access_password"]
