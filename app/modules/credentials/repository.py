from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.crypto import TokenDecryptionError, TokenEncryptor
from app.core.utils.time import now_ms
from app.db.models import Credential


class CredentialStoreError(RuntimeError):
    pass


class CredentialConflictError(CredentialStoreError):
    pass


@dataclass(frozen=True, slots=True)
class StoredCredential:
    id: str
    secret: str = field(repr=False)
    name: str | None
    note: str | None
    created_at: int


class CredentialsRepository:
    def __init__(self, session: AsyncSession, encryptor: TokenEncryptor | None = None) -> None:
        self._session = session
        self._encryptor = encryptor or TokenEncryptor()
        self._lock = asyncio.Lock()

    async def list_credentials(self) -> list[StoredCredential]:
        async with self._lock:
            try:
                result = await self._session.execute(select(Credential).order_by(Credential.seq))
                rows = list(result.scalars().all())
            except SQLAlchemyError as exc:
                await self._rollback()
                raise CredentialStoreError("Failed to list credentials") from exc
        return [self._to_stored(row) for row in rows]

    async def get(self, credential_id: str) -> StoredCredential | None:
        async with self._lock:
            try:
                row = await self._get_row(credential_id)
            except SQLAlchemyError as exc:
                await self._rollback()
                raise CredentialStoreError("Failed to load credential") from exc
        if row is None:
            return None
        return self._to_stored(row)

    async def add(
        self,
        credential_id: str,
        secret: str,
        *,
        name: str | None = None,
        note: str | None = None,
        created_at: int | None = None,
    ) -> StoredCredential:
        row = Credential(
            id=credential_id,
            secret_encrypted=self._encryptor.encrypt(secret),
            name=name,
            note=note,
            created_at=created_at if created_at is not None else now_ms(),
        )
        async with self._lock:
            self._session.add(row)
            try:
                await self._session.commit()
            except IntegrityError as exc:
                await self._rollback()
                raise CredentialConflictError("Credential id already exists") from exc
            except SQLAlchemyError as exc:
                await self._rollback()
                raise CredentialStoreError("Failed to save credential") from exc
        return StoredCredential(
            id=row.id,
            secret=secret,
            name=row.name,
            note=row.note,
            created_at=row.created_at,
        )

    async def set_note(self, credential_id: str, note: str | None) -> StoredCredential | None:
        async with self._lock:
            try:
                row = await self._get_row(credential_id)
                if row is None:
                    return None
                row.note = note
                await self._session.commit()
            except SQLAlchemyError as exc:
                await self._rollback()
                raise CredentialStoreError("Failed to update credential note") from exc
        return self._to_stored(row)

    async def delete(self, credential_id: str) -> bool:
        async with self._lock:
            try:
                result = await self._session.execute(
                    delete(Credential).where(Credential.id == credential_id).returning(Credential.id)
                )
                deleted = result.scalar_one_or_none()
                await self._session.commit()
            except SQLAlchemyError as exc:
                await self._rollback()
                raise CredentialStoreError("Failed to delete credential") from exc
        return deleted is not None

    async def _get_row(self, credential_id: str) -> Credential | None:
        result = await self._session.execute(select(Credential).where(Credential.id == credential_id))
        return result.scalar_one_or_none()

    async def _rollback(self) -> None:
        if self._session.in_transaction():
            await self._session.rollback()

    def _to_stored(self, row: Credential) -> StoredCredential:
        try:
            secret = self._encryptor.decrypt(row.secret_encrypted)
        except TokenDecryptionError as exc:
            raise CredentialStoreError(f"Credential {row.id} cannot be decrypted") from exc
        return StoredCredential(
            id=row.id,
            secret=secret,
            name=row.name,
            note=row.note,
            created_at=row.created_at,
        )
