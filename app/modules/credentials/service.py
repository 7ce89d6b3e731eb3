from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from app.core.usage.classification import ids_in_classes
from app.core.usage.types import AggregateView, CredentialClass
from app.core.utils.masking import mask_secret
from app.core.utils.time import now_ms
from app.modules.credentials.duplicates import DuplicateGroup, find_duplicates, redundant_ids
from app.modules.credentials.repository import CredentialStoreError, StoredCredential
from app.modules.usage.cache import UsageViewCache

CLEANUP_CLASSES = frozenset({CredentialClass.ZERO_BALANCE, CredentialClass.INVALID})

logger = logging.getLogger(__name__)


class CredentialsRepositoryPort(Protocol):
    async def list_credentials(self) -> Sequence[StoredCredential]: ...

    async def get(self, credential_id: str) -> StoredCredential | None: ...

    async def add(
        self,
        credential_id: str,
        secret: str,
        *,
        name: str | None = None,
        note: str | None = None,
        created_at: int | None = None,
    ) -> StoredCredential: ...

    async def set_note(self, credential_id: str, note: str | None) -> StoredCredential | None: ...

    async def delete(self, credential_id: str) -> bool: ...


class CredentialNotFoundError(LookupError):
    pass


class CredentialValidationError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class CredentialSummaryData:
    id: str
    name: str | None
    note: str | None
    created_at: int
    masked_key: str


@dataclass(slots=True)
class ImportResultData:
    success: int = 0
    failed: int = 0
    duplicates: int = 0
    duplicate_keys: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class BatchDeleteResultData:
    deleted_count: int
    total_requested: int
    failed_ids: list[str]
    missing_ids: list[str]


@dataclass(frozen=True, slots=True)
class DuplicateCleanupResultData:
    deleted_count: int
    failed_ids: list[str]


def generate_credential_id() -> str:
    return f"key-{now_ms()}-{secrets.token_hex(4)}"


def _summary(credential: StoredCredential) -> CredentialSummaryData:
    return CredentialSummaryData(
        id=credential.id,
        name=credential.name,
        note=credential.note,
        created_at=credential.created_at,
        masked_key=mask_secret(credential.secret),
    )


class CredentialsService:
    def __init__(self, repository: CredentialsRepositoryPort, cache: UsageViewCache | None = None) -> None:
        self._repository = repository
        self._cache = cache

    async def list_credentials(self) -> list[CredentialSummaryData]:
        credentials = await self._repository.list_credentials()
        return [_summary(credential) for credential in credentials]

    async def add_credential(self, secret: str, name: str | None = None) -> CredentialSummaryData:
        value = secret.strip()
        if not value:
            raise CredentialValidationError("Key is required")
        credential_id = generate_credential_id()
        display_name = name.strip() if name and name.strip() else f"Key {credential_id}"
        stored = await self._repository.add(credential_id, value, name=display_name)
        self._invalidate()
        return _summary(stored)

    async def reveal(self, credential_id: str) -> str:
        credential = await self._repository.get(credential_id)
        if credential is None:
            raise CredentialNotFoundError(credential_id)
        return credential.secret

    async def update_note(self, credential_id: str, note: str | None) -> str | None:
        value = note.strip() if note else None
        updated = await self._repository.set_note(credential_id, value or None)
        if updated is None:
            raise CredentialNotFoundError(credential_id)
        self._invalidate()
        return updated.note

    async def delete_credential(self, credential_id: str) -> None:
        deleted = await self._repository.delete(credential_id)
        if not deleted:
            raise CredentialNotFoundError(credential_id)
        self._invalidate()

    async def batch_import(self, raw_secrets: Iterable[str]) -> ImportResultData:
        result = ImportResultData()
        known = {credential.secret for credential in await self._repository.list_credentials()}

        for raw in raw_secrets:
            secret = raw.strip()
            if not secret:
                continue
            if secret in known:
                masked = mask_secret(secret)
                result.duplicates += 1
                result.duplicate_keys.append(masked)
                logger.info("Skipped duplicate key key=%s", masked)
                continue
            credential_id = generate_credential_id()
            try:
                await self._repository.add(credential_id, secret, name=f"Key {credential_id}")
            except CredentialStoreError:
                logger.warning("Failed to import key key=%s", mask_secret(secret), exc_info=True)
                result.failed += 1
                continue
            known.add(secret)
            result.success += 1

        if result.success:
            self._invalidate()
        logger.info(
            "Batch import finished success=%s failed=%s duplicates=%s",
            result.success,
            result.failed,
            result.duplicates,
        )
        return result

    async def batch_delete(self, credential_ids: Sequence[str]) -> BatchDeleteResultData:
        outcomes = await asyncio.gather(*(self._delete_quietly(credential_id) for credential_id in credential_ids))

        deleted_count = sum(1 for _, outcome in outcomes if outcome is True)
        missing_ids = [credential_id for credential_id, outcome in outcomes if outcome is False]
        failed_ids = [credential_id for credential_id, outcome in outcomes if outcome is None]
        if deleted_count:
            self._invalidate()
        return BatchDeleteResultData(
            deleted_count=deleted_count,
            total_requested=len(credential_ids),
            failed_ids=failed_ids,
            missing_ids=missing_ids,
        )

    async def find_duplicates(self) -> list[DuplicateGroup]:
        return find_duplicates(await self._repository.list_credentials())

    async def resolve_duplicates(self, groups: Sequence[DuplicateGroup] | None = None) -> DuplicateCleanupResultData:
        if groups is None:
            groups = await self.find_duplicates()
        result = await self.batch_delete(redundant_ids(groups))
        return DuplicateCleanupResultData(deleted_count=result.deleted_count, failed_ids=result.failed_ids)

    async def cleanup(
        self,
        view: AggregateView,
        classes: Iterable[CredentialClass] = CLEANUP_CLASSES,
    ) -> BatchDeleteResultData:
        return await self.batch_delete(ids_in_classes(view, classes))

    async def export_secrets(self, view: AggregateView, classification: CredentialClass) -> list[str]:
        exported: list[str] = []
        for credential_id in ids_in_classes(view, [classification]):
            credential = await self._repository.get(credential_id)
            if credential is not None:
                exported.append(credential.secret)
        return exported

    async def _delete_quietly(self, credential_id: str) -> tuple[str, bool | None]:
        try:
            return credential_id, await self._repository.delete(credential_id)
        except CredentialStoreError:
            logger.warning("Failed to delete key credential_id=%s", credential_id, exc_info=True)
            return credential_id, None

    def _invalidate(self) -> None:
        if self._cache is not None:
            self._cache.invalidate()
