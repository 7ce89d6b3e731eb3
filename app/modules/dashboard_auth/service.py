from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from time import time

from app.modules.dashboard_auth.schemas import DashboardAuthSessionResponse

DASHBOARD_SESSION_COOKIE = "keymeter_dashboard_session"


class DashboardInvalidPasswordError(ValueError):
    pass


@dataclass(slots=True)
class DashboardSessionState:
    expires_at: int


class DashboardSessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, DashboardSessionState] = {}

    def create(self, ttl_seconds: int) -> str:
        now = int(time())
        self._prune(now)
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = DashboardSessionState(expires_at=now + ttl_seconds)
        return session_id

    def get(self, session_id: str | None) -> DashboardSessionState | None:
        if not session_id:
            return None
        state = self._sessions.get(session_id)
        if state is None:
            return None
        if state.expires_at < int(time()):
            self._sessions.pop(session_id, None)
            return None
        return state

    def delete(self, session_id: str | None) -> None:
        if not session_id:
            return
        self._sessions.pop(session_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    def _prune(self, now: int) -> None:
        expired = [session_id for session_id, state in self._sessions.items() if state.expires_at < now]
        for session_id in expired:
            del self._sessions[session_id]


class DashboardAuthService:
    """Password gate for the dashboard. Without a password every caller is authorized."""

    def __init__(self, session_store: DashboardSessionStore, password: str | None, ttl_seconds: int) -> None:
        self._session_store = session_store
        self._password = password
        self._ttl_seconds = ttl_seconds

    @property
    def password_required(self) -> bool:
        return self._password is not None

    def is_authorized(self, session_id: str | None) -> bool:
        if self._password is None:
            return True
        return self._session_store.get(session_id) is not None

    def get_session_state(self, session_id: str | None) -> DashboardAuthSessionResponse:
        return DashboardAuthSessionResponse(
            authenticated=self.is_authorized(session_id),
            password_required=self.password_required,
        )

    def login(self, password: str) -> str:
        if self._password is None:
            return self._session_store.create(self._ttl_seconds)
        if not hmac.compare_digest(password.encode("utf-8"), self._password.encode("utf-8")):
            raise DashboardInvalidPasswordError("Invalid password")
        return self._session_store.create(self._ttl_seconds)

    def logout(self, session_id: str | None) -> None:
        self._session_store.delete(session_id)


_dashboard_session_store = DashboardSessionStore()


def get_dashboard_session_store() -> DashboardSessionStore:
    return _dashboard_session_store
