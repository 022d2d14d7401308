"""GET /roles：预设角色列表。"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, status

from app.services.role_service import RoleConfigError, load_roles
from app.settings.config import get_settings

router = APIRouter(tags=["roles"])


@router.get("/roles")
async def list_roles() -> List[Dict[str, Any]]:
    try:
        roles = load_roles(get_settings())
    except RoleConfigError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "roles_unavailable", "message": str(exc)},
        ) from exc
    return [role.to_dict() for role in roles]
