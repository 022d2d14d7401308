"""v1 版本路由集合。"""

import logging

from fastapi import APIRouter

from .chat import router as chat_router
from .config import router as config_router
from .health import router as health_router
from .roles import router as roles_router
from .summarize import router as summarize_router

logger = logging.getLogger(__name__)

v1_router = APIRouter()
v1_router.include_router(chat_router)
v1_router.include_router(config_router)
v1_router.include_router(summarize_router)
v1_router.include_router(roles_router)
v1_router.include_router(health_router)
logger.debug("[ROUTER_INIT] v1 router registered with %d routes", len(v1_router.routes))

__all__ = ["v1_router"]
