from __future__ import annotations

import pytest

from app.core.config.settings import get_settings
from app.modules.dashboard_auth.service import DASHBOARD_SESSION_COOKIE

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_dashboard_open_without_password(async_client):
    session = await async_client.get("/api/dashboard-auth/session")
    assert session.json() == {"authenticated": True, "passwordRequired": False}

    listed = await async_client.get("/api/keys")
    assert listed.status_code == 200


@pytest.mark.asyncio
async def test_dashboard_password_login_flow(async_client):
    get_settings().admin_password = "hunter2"

    session = await async_client.get("/api/dashboard-auth/session")
    assert session.json() == {"authenticated": False, "passwordRequired": True}

    blocked = await async_client.get("/api/keys")
    assert blocked.status_code == 401
    assert blocked.json()["error"]["code"] == "authentication_required"

    blocked_data = await async_client.get("/api/data")
    assert blocked_data.status_code == 401

    wrong = await async_client.post("/api/dashboard-auth/login", json={"password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "invalid_password"

    login = await async_client.post("/api/dashboard-auth/login", json={"password": "hunter2"})
    assert login.status_code == 200
    assert login.json() == {"authenticated": True, "passwordRequired": True}
    assert DASHBOARD_SESSION_COOKIE in login.cookies

    allowed = await async_client.get("/api/keys")
    assert allowed.status_code == 200

    logout = await async_client.post("/api/dashboard-auth/logout")
    assert logout.json() == {"status": "logged_out"}

    async_client.cookies.clear()
    after = await async_client.get("/api/keys")
    assert after.status_code == 401


@pytest.mark.asyncio
async def test_dashboard_login_requires_password_field(async_client):
    response = await async_client.post("/api/dashboard-auth/login", json={"password": ""})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"
