from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.core.errors import dashboard_error
from app.dependencies import DashboardAuthContext, get_dashboard_auth_context
from app.modules.dashboard_auth.schemas import DashboardAuthSessionResponse, DashboardLoginRequest
from app.modules.dashboard_auth.service import DASHBOARD_SESSION_COOKIE, DashboardInvalidPasswordError

router = APIRouter(prefix="/api/dashboard-auth", tags=["dashboard"])


@router.get("/session", response_model=DashboardAuthSessionResponse)
async def get_dashboard_auth_session(
    request: Request,
    context: DashboardAuthContext = Depends(get_dashboard_auth_context),
) -> DashboardAuthSessionResponse:
    session_id = request.cookies.get(DASHBOARD_SESSION_COOKIE)
    return context.service.get_session_state(session_id)


@router.post("/login", response_model=DashboardAuthSessionResponse)
async def login(
    response: Response,
    payload: DashboardLoginRequest = Body(...),
    context: DashboardAuthContext = Depends(get_dashboard_auth_context),
) -> DashboardAuthSessionResponse | JSONResponse:
    try:
        session_id = context.service.login(payload.password)
    except DashboardInvalidPasswordError as exc:
        return JSONResponse(
            status_code=401,
            content=dashboard_error("invalid_password", str(exc)),
        )
    response.set_cookie(
        key=DASHBOARD_SESSION_COOKIE,
        value=session_id,
        max_age=context.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        path="/",
    )
    return context.service.get_session_state(session_id)


@router.post("/logout")
async def logout(
    request: Request,
    context: DashboardAuthContext = Depends(get_dashboard_auth_context),
) -> JSONResponse:
    context.service.logout(request.cookies.get(DASHBOARD_SESSION_COOKIE))
    response = JSONResponse(content={"status": "logged_out"})
    response.delete_cookie(key=DASHBOARD_SESSION_COOKIE, path="/")
    return response
