from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from app.core.usage import DEFAULT_FETCH_CONCURRENCY
from app.core.usage.types import (
    FETCH_FAILED,
    AggregateProgress,
    AggregateView,
    CredentialLike,
    UsageFetchError,
    UsageFetchResult,
    UsageSnapshot,
    compute_totals,
)
from app.core.utils.masking import mask_secret
from app.core.utils.time import format_local_timestamp, utcnow

UsageFetcher = Callable[[str], Awaitable[UsageFetchResult]]
ProgressCallback = Callable[[AggregateProgress], Awaitable[None] | None]

logger = logging.getLogger(__name__)


class NoCredentialsError(LookupError):
    def __init__(self, message: str = "No API keys found in storage. Please import keys first.") -> None:
        super().__init__(message)
        self.message = message


class UsageAggregator:
    """Fan out one usage fetch per credential and fold the results into a view.

    At most ``concurrency`` fetches are in flight. Each resolved fetch lands in
    the slot of its credential, so the final order always matches the input.
    After every resolved fetch the partial totals are recomputed and handed to
    ``on_progress``.
    """

    def __init__(
        self,
        fetch: UsageFetcher,
        *,
        concurrency: int = DEFAULT_FETCH_CONCURRENCY,
        display_timezone: str = "UTC",
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._fetch = fetch
        self._concurrency = concurrency
        self._display_timezone = display_timezone

    async def aggregate(
        self,
        credentials: Sequence[CredentialLike],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> AggregateView:
        if not credentials:
            raise NoCredentialsError()

        total = len(credentials)
        slots: list[UsageSnapshot | None] = [None] * total
        semaphore = asyncio.Semaphore(self._concurrency)
        completed = 0

        async def fetch_one(index: int, credential: CredentialLike) -> None:
            nonlocal completed
            async with semaphore:
                try:
                    result = await self._fetch(credential.secret)
                except Exception:
                    logger.exception("Usage fetch raised credential_id=%s", credential.id)
                    result = UsageFetchError(masked_key=mask_secret(credential.secret), error=FETCH_FAILED)
            slots[index] = UsageSnapshot(
                id=credential.id,
                name=credential.name,
                note=credential.note,
                result=result,
            )
            completed += 1
            if on_progress is not None:
                progress = AggregateProgress(
                    completed=completed,
                    total=total,
                    totals=compute_totals(slots),
                    running=completed < total,
                )
                outcome = on_progress(progress)
                if outcome is not None:
                    await outcome

        await asyncio.gather(*(fetch_one(index, credential) for index, credential in enumerate(credentials)))

        snapshots = [snapshot for snapshot in slots if snapshot is not None]
        totals = compute_totals(snapshots)
        computed_at = utcnow()
        failed = sum(1 for snapshot in snapshots if snapshot.usage is None)
        logger.info(
            "Usage aggregation finished credentials=%s failed=%s allowance=%s used=%s",
            total,
            failed,
            totals.total_allowance,
            totals.total_used,
        )
        return AggregateView(
            snapshots=snapshots,
            totals=totals,
            total_count=total,
            computed_at=computed_at,
            update_time=format_local_timestamp(computed_at, self._display_timezone),
        )
