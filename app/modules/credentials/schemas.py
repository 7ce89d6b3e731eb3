from __future__ import annotations

from pydantic import Field

from app.modules.credentials.duplicates import DuplicateGroup
from app.modules.credentials.service import (
    BatchDeleteResultData,
    CredentialSummaryData,
    DuplicateCleanupResultData,
    ImportResultData,
)
from app.modules.shared.schemas import DashboardModel


class CredentialSummary(DashboardModel):
    id: str
    name: str | None = None
    note: str | None = None
    created_at: int
    masked_key: str

    @classmethod
    def from_data(cls, data: CredentialSummaryData) -> "CredentialSummary":
        return cls(
            id=data.id,
            name=data.name,
            note=data.note,
            created_at=data.created_at,
            masked_key=data.masked_key,
        )


class CredentialsResponse(DashboardModel):
    credentials: list[CredentialSummary] = Field(default_factory=list)


class CredentialCreateRequest(DashboardModel):
    key: str
    name: str | None = None


class CredentialImportRequest(DashboardModel):
    keys: list[str]


class CredentialImportResponse(DashboardModel):
    success: int
    failed: int
    duplicates: int
    duplicate_keys: list[str] = Field(default_factory=list)

    @classmethod
    def from_data(cls, data: ImportResultData) -> "CredentialImportResponse":
        return cls(
            success=data.success,
            failed=data.failed,
            duplicates=data.duplicates,
            duplicate_keys=list(data.duplicate_keys),
        )


class BatchDeleteRequest(DashboardModel):
    ids: list[str]


class BatchDeleteResponse(DashboardModel):
    deleted_count: int
    total_requested: int
    failed_ids: list[str] = Field(default_factory=list)
    missing_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_data(cls, data: BatchDeleteResultData) -> "BatchDeleteResponse":
        return cls(
            deleted_count=data.deleted_count,
            total_requested=data.total_requested,
            failed_ids=list(data.failed_ids),
            missing_ids=list(data.missing_ids),
        )


class DuplicateGroupPayload(DashboardModel):
    key: str
    ids: list[str]
    count: int

    @classmethod
    def from_data(cls, group: DuplicateGroup) -> "DuplicateGroupPayload":
        return cls(key=group.masked_key, ids=list(group.ids), count=group.count)


class DuplicatesResponse(DashboardModel):
    duplicates: list[DuplicateGroupPayload] = Field(default_factory=list)


class DuplicateCleanupResponse(DashboardModel):
    deleted_count: int
    failed_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_data(cls, data: DuplicateCleanupResultData) -> "DuplicateCleanupResponse":
        return cls(deleted_count=data.deleted_count, failed_ids=list(data.failed_ids))


class CredentialSecretResponse(DashboardModel):
    key: str


class CredentialExportResponse(DashboardModel):
    classification: str
    keys: list[str] = Field(default_factory=list)


class CredentialNoteRequest(DashboardModel):
    note: str | None = None


class CredentialNoteResponse(DashboardModel):
    id: str
    note: str | None = None


class CredentialDeleteResponse(DashboardModel):
    status: str
