"""FastAPI 应用入口。"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import v1_router
from app.core.exceptions import register_exception_handlers
from app.core.middleware import REQUEST_ID_HEADER_NAME, RequestIDMiddleware
from app.log import logger
from app.services.provider_registry import get_provider_configs
from app.settings.config import Settings, get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    providers = get_provider_configs(settings)
    logger.info(
        "[STARTUP] {} v{} providers={}",
        settings.app_name,
        settings.app_version,
        ",".join(f"{p.id}({len(p.models)})" for p in providers) or "-",
    )
    yield
    logger.info("[SHUTDOWN] {}", settings.app_name)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials="*" not in settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER_NAME],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    app.include_router(v1_router, prefix="/api/v1")
    return app


app = create_app()

__all__ = ["app", "create_app"]
