from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.clients.http import close_http_client, init_http_client
from app.core.config.settings import get_settings
from app.core.handlers.exceptions import add_exception_handlers
from app.db.session import init_db
from app.modules.credentials.api import router as credentials_router
from app.modules.dashboard_auth.api import router as dashboard_auth_router
from app.modules.usage.api import router as usage_router
from app.modules.usage.scheduler import get_usage_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    await init_db()
    await init_http_client()
    scheduler = get_usage_scheduler()
    await scheduler.start()
    logger.info(
        "keymeter started password_protection=%s auto_refresh_seconds=%s",
        "enabled" if settings.admin_password else "disabled",
        scheduler.interval_seconds,
    )
    try:
        yield
    finally:
        await scheduler.stop()
        await close_http_client()


def create_app() -> FastAPI:
    app = FastAPI(title="keymeter", lifespan=lifespan)
    add_exception_handlers(app)

    app.include_router(dashboard_auth_router)
    app.include_router(usage_router)
    app.include_router(credentials_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
