from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import dashboard_error
from app.core.usage.aggregator import NoCredentialsError
from app.core.utils.json_guards import is_json_mapping
from app.dependencies import DashboardAuthRequiredError
from app.modules.credentials.repository import CredentialStoreError

logger = logging.getLogger(__name__)


def _detail_text(detail: object) -> str:
    if isinstance(detail, str):
        stripped = detail.strip()
        return stripped or "Request failed"
    if is_json_mapping(detail):
        message = detail.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
        error = detail.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()
    return "Request failed"


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> Response:
        if request.url.path.startswith("/api/"):
            return JSONResponse(
                status_code=422,
                content=dashboard_error("validation_error", "Invalid request payload"),
            )
        return await request_validation_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> Response:
        if request.url.path.startswith("/api/"):
            detail = _detail_text(exc.detail)
            return JSONResponse(
                status_code=exc.status_code,
                content=dashboard_error(f"http_{exc.status_code}", detail),
                headers=exc.headers,
            )
        return await http_exception_handler(request, exc)

    @app.exception_handler(DashboardAuthRequiredError)
    async def auth_required_handler(
        request: Request,
        exc: DashboardAuthRequiredError,
    ) -> Response:
        return JSONResponse(
            status_code=401,
            content=dashboard_error("authentication_required", str(exc) or "Authentication required"),
        )

    @app.exception_handler(NoCredentialsError)
    async def no_credentials_handler(
        request: Request,
        exc: NoCredentialsError,
    ) -> Response:
        return JSONResponse(
            status_code=400,
            content=dashboard_error("no_credentials", exc.message),
        )

    @app.exception_handler(CredentialStoreError)
    async def store_error_handler(
        request: Request,
        exc: CredentialStoreError,
    ) -> Response:
        logger.error("Credential store failure path=%s error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content=dashboard_error("store_error", "Credential store failure"),
        )
