from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from app.core.errors import dashboard_error
from app.core.usage.types import CredentialClass
from app.dependencies import CredentialsContext, get_credentials_context, require_dashboard_session
from app.modules.credentials.schemas import (
    BatchDeleteRequest,
    BatchDeleteResponse,
    CredentialCreateRequest,
    CredentialDeleteResponse,
    CredentialExportResponse,
    CredentialImportRequest,
    CredentialImportResponse,
    CredentialNoteRequest,
    CredentialNoteResponse,
    CredentialSecretResponse,
    CredentialsResponse,
    CredentialSummary,
    DuplicateCleanupResponse,
    DuplicateGroupPayload,
    DuplicatesResponse,
)
from app.modules.credentials.service import CredentialNotFoundError, CredentialValidationError
from app.modules.usage.schemas import UsageSnapshotPayload

router = APIRouter(
    prefix="/api/keys",
    tags=["dashboard"],
    dependencies=[Depends(require_dashboard_session)],
)


def _not_found() -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=dashboard_error("credential_not_found", "Key not found"),
    )


@router.get("", response_model=CredentialsResponse)
async def list_credentials(
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialsResponse:
    credentials = await context.service.list_credentials()
    return CredentialsResponse(credentials=[CredentialSummary.from_data(item) for item in credentials])


@router.post("", response_model=CredentialSummary)
async def add_credential(
    payload: CredentialCreateRequest = Body(...),
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialSummary | JSONResponse:
    try:
        created = await context.service.add_credential(payload.key, payload.name)
    except CredentialValidationError as exc:
        return JSONResponse(
            status_code=400,
            content=dashboard_error("invalid_key", str(exc)),
        )
    return CredentialSummary.from_data(created)


@router.post("/import", response_model=CredentialImportResponse)
async def import_credentials(
    payload: CredentialImportRequest = Body(...),
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialImportResponse:
    result = await context.service.batch_import(payload.keys)
    return CredentialImportResponse.from_data(result)


@router.get("/duplicates", response_model=DuplicatesResponse)
async def find_duplicates(
    context: CredentialsContext = Depends(get_credentials_context),
) -> DuplicatesResponse:
    groups = await context.service.find_duplicates()
    return DuplicatesResponse(duplicates=[DuplicateGroupPayload.from_data(group) for group in groups])


@router.post("/duplicates/clean", response_model=DuplicateCleanupResponse)
async def clean_duplicates(
    context: CredentialsContext = Depends(get_credentials_context),
) -> DuplicateCleanupResponse:
    result = await context.service.resolve_duplicates()
    return DuplicateCleanupResponse.from_data(result)


@router.post("/batch-delete", response_model=BatchDeleteResponse)
async def batch_delete(
    payload: BatchDeleteRequest = Body(...),
    context: CredentialsContext = Depends(get_credentials_context),
) -> BatchDeleteResponse:
    result = await context.service.batch_delete(payload.ids)
    return BatchDeleteResponse.from_data(result)


@router.post("/cleanup", response_model=BatchDeleteResponse)
async def cleanup_invalid_and_zero(
    context: CredentialsContext = Depends(get_credentials_context),
) -> BatchDeleteResponse:
    view = await context.usage.get_view(refresh=True)
    result = await context.service.cleanup(view)
    return BatchDeleteResponse.from_data(result)


@router.post("/zero-balance/delete", response_model=BatchDeleteResponse)
async def cleanup_zero_balance(
    context: CredentialsContext = Depends(get_credentials_context),
) -> BatchDeleteResponse:
    view = await context.usage.get_view(refresh=True)
    result = await context.service.cleanup(view, [CredentialClass.ZERO_BALANCE])
    return BatchDeleteResponse.from_data(result)


@router.get("/export", response_model=CredentialExportResponse)
async def export_credentials(
    classification: CredentialClass = Query(...),
    refresh: bool = Query(False),
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialExportResponse:
    view = await context.usage.get_view(refresh=refresh)
    keys = await context.service.export_secrets(view, classification)
    return CredentialExportResponse(classification=classification.value, keys=keys)


@router.get("/{credential_id}/full", response_model=CredentialSecretResponse)
async def reveal_credential(
    credential_id: str,
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialSecretResponse | JSONResponse:
    try:
        secret = await context.service.reveal(credential_id)
    except CredentialNotFoundError:
        return _not_found()
    return CredentialSecretResponse(key=secret)


@router.get("/{credential_id}/usage", response_model=UsageSnapshotPayload)
async def credential_usage(
    credential_id: str,
    context: CredentialsContext = Depends(get_credentials_context),
) -> UsageSnapshotPayload | JSONResponse:
    try:
        snapshot = await context.usage.fetch_single(credential_id)
    except CredentialNotFoundError:
        return _not_found()
    return UsageSnapshotPayload.from_data(snapshot)


@router.put("/{credential_id}/note", response_model=CredentialNoteResponse)
async def update_note(
    credential_id: str,
    payload: CredentialNoteRequest = Body(...),
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialNoteResponse | JSONResponse:
    try:
        note = await context.service.update_note(credential_id, payload.note)
    except CredentialNotFoundError:
        return _not_found()
    return CredentialNoteResponse(id=credential_id, note=note)


@router.delete("/{credential_id}", response_model=CredentialDeleteResponse)
async def delete_credential(
    credential_id: str,
    context: CredentialsContext = Depends(get_credentials_context),
) -> CredentialDeleteResponse | JSONResponse:
    try:
        await context.service.delete_credential(credential_id)
    except CredentialNotFoundError:
        return _not_found()
    return CredentialDeleteResponse(status="deleted")
