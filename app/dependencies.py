from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clients.usage import fetch_usage
from app.core.config.settings import get_settings
from app.core.usage.aggregator import UsageFetcher
from app.db.session import get_session
from app.modules.credentials.repository import CredentialsRepository
from app.modules.credentials.service import CredentialsService
from app.modules.dashboard_auth.service import (
    DASHBOARD_SESSION_COOKIE,
    DashboardAuthService,
    get_dashboard_session_store,
)
from app.modules.usage.cache import get_usage_view_cache
from app.modules.usage.scheduler import UsageRefreshScheduler, get_usage_scheduler
from app.modules.usage.service import UsageService


class DashboardAuthRequiredError(PermissionError):
    pass


@dataclass(slots=True)
class CredentialsContext:
    session: AsyncSession
    repository: CredentialsRepository
    service: CredentialsService
    usage: UsageService


@dataclass(slots=True)
class UsageContext:
    session: AsyncSession
    service: UsageService
    scheduler: UsageRefreshScheduler


@dataclass(slots=True)
class DashboardAuthContext:
    service: DashboardAuthService
    session_ttl_seconds: int


def get_usage_fetcher() -> UsageFetcher:
    return fetch_usage


def _usage_service(repository: CredentialsRepository, fetch: UsageFetcher) -> UsageService:
    settings = get_settings()
    return UsageService(
        repository,
        fetch,
        get_usage_view_cache(),
        concurrency=settings.usage_fetch_concurrency,
        display_timezone=settings.display_timezone,
    )


def get_credentials_context(
    session: AsyncSession = Depends(get_session),
    fetch: UsageFetcher = Depends(get_usage_fetcher),
) -> CredentialsContext:
    repository = CredentialsRepository(session)
    return CredentialsContext(
        session=session,
        repository=repository,
        service=CredentialsService(repository, get_usage_view_cache()),
        usage=_usage_service(repository, fetch),
    )


def get_usage_context(
    session: AsyncSession = Depends(get_session),
    fetch: UsageFetcher = Depends(get_usage_fetcher),
) -> UsageContext:
    return UsageContext(
        session=session,
        service=_usage_service(CredentialsRepository(session), fetch),
        scheduler=get_usage_scheduler(),
    )


def get_dashboard_auth_context() -> DashboardAuthContext:
    settings = get_settings()
    service = DashboardAuthService(
        get_dashboard_session_store(),
        settings.admin_password,
        settings.dashboard_session_ttl_seconds,
    )
    return DashboardAuthContext(service=service, session_ttl_seconds=settings.dashboard_session_ttl_seconds)


def require_dashboard_session(
    request: Request,
    context: DashboardAuthContext = Depends(get_dashboard_auth_context),
) -> None:
    if not context.service.is_authorized(request.cookies.get(DASHBOARD_SESSION_COOKIE)):
        raise DashboardAuthRequiredError("Authentication required")
