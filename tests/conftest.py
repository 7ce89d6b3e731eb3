from __future__ import annotations

import asyncio
import dataclasses
import os
import tempfile
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="keymeter-tests-"))
os.environ["KEYMETER_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'keymeter.db'}"
os.environ["KEYMETER_ENCRYPTION_KEY_FILE"] = str(_TEST_DIR / "encryption.key")
os.environ["KEYMETER_AUTO_REFRESH_INTERVAL_SECONDS"] = "0"
os.environ.pop("KEYMETER_ADMIN_PASSWORD", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402

from app.core.usage.types import UsageData, UsageFetchError, UsageFetchResult  # noqa: E402
from app.core.utils.masking import mask_secret  # noqa: E402
from app.modules.credentials.repository import (  # noqa: E402
    CredentialConflictError,
    CredentialStoreError,
    StoredCredential,
)


def make_usage(secret: str, *, allowance: int, used: int, ratio: float | None = None) -> UsageData:
    return UsageData(
        masked_key=mask_secret(secret),
        org_total_tokens_used=used,
        total_allowance=allowance,
        used_ratio=ratio if ratio is not None else (used / allowance if allowance else 0.0),
        start_date="2026-10-01",
        end_date="2026-10-31",
    )


def make_rejection(secret: str, status: int = 401) -> UsageFetchError:
    return UsageFetchError(masked_key=mask_secret(secret), error=str(status), status_code=status)


class FakeUsageFetcher:
    def __init__(self) -> None:
        self.results: dict[str, UsageFetchResult] = {}
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = 0.0

    def set_usage(self, secret: str, *, allowance: int, used: int) -> None:
        self.results[secret] = make_usage(secret, allowance=allowance, used=used)

    def set_rejection(self, secret: str, status: int = 401) -> None:
        self.results[secret] = make_rejection(secret, status)

    async def __call__(self, secret: str) -> UsageFetchResult:
        self.calls.append(secret)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        result = self.results.get(secret)
        if result is None:
            return make_rejection(secret)
        return result


class InMemoryCredentialsRepository:
    def __init__(self) -> None:
        self._rows: dict[str, StoredCredential] = {}
        self._clock = 1_700_000_000_000
        self.fail_on_add: set[str] = set()
        self.fail_on_delete: set[str] = set()

    async def list_credentials(self) -> list[StoredCredential]:
        return list(self._rows.values())

    async def get(self, credential_id: str) -> StoredCredential | None:
        return self._rows.get(credential_id)

    async def add(
        self,
        credential_id: str,
        secret: str,
        *,
        name: str | None = None,
        note: str | None = None,
        created_at: int | None = None,
    ) -> StoredCredential:
        if secret in self.fail_on_add:
            raise CredentialStoreError("write failed")
        if credential_id in self._rows:
            raise CredentialConflictError("Credential id already exists")
        self._clock += 1
        row = StoredCredential(
            id=credential_id,
            secret=secret,
            name=name,
            note=note,
            created_at=created_at if created_at is not None else self._clock,
        )
        self._rows[credential_id] = row
        return row

    async def set_note(self, credential_id: str, note: str | None) -> StoredCredential | None:
        row = self._rows.get(credential_id)
        if row is None:
            return None
        updated = dataclasses.replace(row, note=note)
        self._rows[credential_id] = updated
        return updated

    async def delete(self, credential_id: str) -> bool:
        await asyncio.sleep(0)
        if credential_id in self.fail_on_delete:
            raise CredentialStoreError("delete failed")
        return self._rows.pop(credential_id, None) is not None


@pytest.fixture
def fake_fetcher() -> FakeUsageFetcher:
    return FakeUsageFetcher()


@pytest.fixture
def memory_repo() -> InMemoryCredentialsRepository:
    return InMemoryCredentialsRepository()


@pytest.fixture(autouse=True)
def _reset_process_state() -> Iterator[None]:
    from app.core.config.settings import get_settings
    from app.modules.dashboard_auth.service import get_dashboard_session_store
    from app.modules.usage.cache import get_usage_view_cache

    get_usage_view_cache().reset()
    get_dashboard_session_store().clear()
    settings = get_settings()
    original_password = settings.admin_password
    yield
    settings.admin_password = original_password


@pytest_asyncio.fixture
async def app_instance(fake_fetcher: FakeUsageFetcher) -> AsyncIterator[FastAPI]:
    from app.db.session import drop_db, engine
    from app.dependencies import get_usage_fetcher
    from app.main import create_app
    from app.modules.usage import scheduler as scheduler_module

    scheduler_module._usage_scheduler = None
    app = create_app()
    app.dependency_overrides[get_usage_fetcher] = lambda: fake_fetcher
    await drop_db()
    async with app.router.lifespan_context(app):
        yield app
    await engine.dispose()


@pytest_asyncio.fixture
async def async_client(app_instance: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app_instance)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
