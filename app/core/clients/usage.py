from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.clients.http import get_http_client
from app.core.config.settings import get_settings
from app.core.usage.types import (
    FETCH_FAILED,
    INVALID_RESPONSE_STRUCTURE,
    UsageData,
    UsageFetchError,
    UsageFetchResult,
)
from app.core.utils.masking import mask_secret
from app.core.utils.time import format_epoch_ms_date

_ERROR_BODY_LOG_LIMIT = 200

logger = logging.getLogger(__name__)


class StandardUsagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, strict=True)

    org_total_tokens_used: int = Field(alias="orgTotalTokensUsed")
    total_allowance: int = Field(alias="totalAllowance")
    used_ratio: float = Field(alias="usedRatio")


class UsagePeriodPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    start_date: Any = Field(default=None, alias="startDate")
    end_date: Any = Field(default=None, alias="endDate")
    standard: StandardUsagePayload


class UsageResponsePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    usage: UsagePeriodPayload


async def fetch_usage(
    secret: str,
    *,
    session: aiohttp.ClientSession | None = None,
) -> UsageFetchResult:
    """Query the usage-accounting endpoint for one secret.

    Never raises for remote or transport problems: every outcome comes back
    as either ``UsageData`` or a ``UsageFetchError`` carrying a classification
    string (the HTTP status code, ``invalid response structure`` or
    ``fetch failed``).
    """
    settings = get_settings()
    masked = mask_secret(secret)
    headers = {
        "Authorization": f"Bearer {secret}",
        "User-Agent": settings.usage_user_agent,
        "Accept": "application/json",
    }
    timeout = aiohttp.ClientTimeout(total=settings.usage_request_timeout_seconds)
    client_session = session or get_http_client().session

    try:
        async with client_session.get(settings.usage_endpoint_url, headers=headers, timeout=timeout) as resp:
            if not 200 <= resp.status < 300:
                body = await _safe_text(resp)
                logger.warning(
                    "Usage request rejected key=%s status=%s body=%s",
                    masked,
                    resp.status,
                    body[:_ERROR_BODY_LOG_LIMIT],
                )
                return UsageFetchError(masked_key=masked, error=str(resp.status), status_code=resp.status)
            try:
                data = await resp.json(content_type=None)
            except ValueError:
                logger.warning("Usage response is not JSON key=%s", masked)
                return UsageFetchError(masked_key=masked, error=INVALID_RESPONSE_STRUCTURE)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        logger.warning("Usage request failed key=%s error=%s", masked, type(exc).__name__)
        return UsageFetchError(masked_key=masked, error=FETCH_FAILED)

    return parse_usage_payload(data, masked)


def parse_usage_payload(data: object, masked_key: str) -> UsageFetchResult:
    try:
        payload = UsageResponsePayload.model_validate(data)
    except ValidationError:
        logger.warning("Usage response has unexpected structure key=%s", masked_key)
        return UsageFetchError(masked_key=masked_key, error=INVALID_RESPONSE_STRUCTURE)

    usage = payload.usage
    return UsageData(
        masked_key=masked_key,
        org_total_tokens_used=usage.standard.org_total_tokens_used,
        total_allowance=usage.standard.total_allowance,
        used_ratio=usage.standard.used_ratio,
        start_date=format_epoch_ms_date(usage.start_date),
        end_date=format_epoch_ms_date(usage.end_date),
    )


async def _safe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return (await resp.text()).strip()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return ""
