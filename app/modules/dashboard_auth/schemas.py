from __future__ import annotations

from pydantic import Field

from app.modules.shared.schemas import DashboardModel


class DashboardAuthSessionResponse(DashboardModel):
    authenticated: bool
    password_required: bool


class DashboardLoginRequest(DashboardModel):
    password: str = Field(min_length=1)
