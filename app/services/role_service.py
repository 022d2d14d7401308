"""预设角色（system prompt 模板）加载。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.settings.config import Settings

logger = logging.getLogger(__name__)


class Role(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    system_prompt: str = Field(alias="systemPrompt")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class RoleConfigError(RuntimeError):
    """角色文件缺失或格式不合法。"""


DEFAULT_ROLES: List[Role] = [
    Role(
        id="default",
        name="通用助手",
        description="General purpose assistant",
        system_prompt="You are a helpful assistant.",
    ),
    Role(
        id="translator",
        name="翻译",
        description="中英互译",
        system_prompt=(
            "You are a professional translator. Translate Chinese input into English and any other "
            "language into Chinese. Reply with the translation only."
        ),
    ),
    Role(
        id="code-reviewer",
        name="代码审查",
        description="Reviews code for bugs and readability",
        system_prompt="You are a senior engineer. Review the given code and point out bugs first, then style issues.",
    ),
]

_ROLE_LIST = TypeAdapter(List[Role])


def load_roles(settings: Settings) -> List[Role]:
    if not settings.roles_file:
        return list(DEFAULT_ROLES)

    path = Path(settings.roles_file)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        logger.error("[ROLES_LOAD_FAILED] path=%s error=%s", path, exc)
        raise RoleConfigError(f"Roles file not readable: {path}") from exc

    try:
        roles = _ROLE_LIST.validate_json(raw)
    except ValidationError as exc:
        logger.error("[ROLES_INVALID] path=%s errors=%d", path, exc.error_count())
        raise RoleConfigError(f"Roles file is invalid: {path}") from exc

    seen: set[str] = set()
    unique: List[Role] = []
    for role in roles:
        if role.id in seen:
            logger.warning("[ROLES_DUPLICATE_ID] path=%s id=%s", path, role.id)
            continue
        seen.add(role.id)
        unique.append(role)
    return unique
