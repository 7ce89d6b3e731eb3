from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from app.core.errors import dashboard_error
from app.core.types import JsonObject
from app.core.usage.aggregator import NoCredentialsError, ProgressCallback, UsageAggregator, UsageFetcher
from app.core.usage.types import AggregateProgress, AggregateView, CredentialLike, UsageSnapshot
from app.core.utils.sse import format_sse_event
from app.modules.credentials.service import CredentialNotFoundError
from app.modules.usage.cache import UsageViewCache
from app.modules.usage.schemas import AggregateProgressResponse, AggregateViewResponse

logger = logging.getLogger(__name__)


class CredentialSourcePort(Protocol):
    async def list_credentials(self) -> Sequence[CredentialLike]: ...

    async def get(self, credential_id: str) -> CredentialLike | None: ...


class UsageService:
    def __init__(
        self,
        repository: CredentialSourcePort,
        fetch: UsageFetcher,
        cache: UsageViewCache,
        *,
        concurrency: int,
        display_timezone: str = "UTC",
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._aggregator = UsageAggregator(fetch, concurrency=concurrency, display_timezone=display_timezone)

    @property
    def progress(self) -> AggregateProgress:
        return self._cache.progress

    async def get_view(self, *, refresh: bool = False) -> AggregateView:
        if not refresh and self._cache.view is not None:
            return self._cache.view
        async with self._cache.lock:
            if not refresh and self._cache.view is not None:
                return self._cache.view
            return await self._aggregate_locked()

    async def refresh(self) -> AggregateView:
        return await self.get_view(refresh=True)

    async def fetch_single(self, credential_id: str) -> UsageSnapshot:
        credential = await self._repository.get(credential_id)
        if credential is None:
            raise CredentialNotFoundError(credential_id)
        view = await self._aggregator.aggregate([credential])
        return view.snapshots[0]

    @property
    def generation(self) -> int:
        return self._cache.generation

    async def load_credentials(self) -> list[CredentialLike]:
        return list(await self._repository.list_credentials())

    async def stream_view(self, credentials: Sequence[CredentialLike], generation: int) -> AsyncIterator[str]:
        """Aggregate the given credentials and yield the run as server-sent events.

        ``generation`` is the cache generation read before ``credentials`` were
        loaded. If a store write happened since, the view is streamed but not
        cached.

        One ``progress`` event follows every resolved fetch. The stream ends
        with either a ``complete`` event carrying the view or an ``error``
        event.
        """
        queue: asyncio.Queue[JsonObject | None] = asyncio.Queue()

        def push(progress: AggregateProgress) -> None:
            payload = AggregateProgressResponse.from_data(progress).model_dump(by_alias=True, mode="json")
            queue.put_nowait({"type": "progress", **payload})

        async def run() -> AggregateView:
            async with self._cache.lock:
                return await self._aggregate_locked(credentials, push, generation=generation)

        task = asyncio.create_task(run())
        task.add_done_callback(lambda _: queue.put_nowait(None))
        task.add_done_callback(_log_stream_outcome)

        while (event := await queue.get()) is not None:
            yield format_sse_event(event)

        try:
            view = task.result()
        except NoCredentialsError as exc:
            yield format_sse_event({"type": "error", **dashboard_error("no_credentials", exc.message)})
            return
        payload = AggregateViewResponse.from_data(view).model_dump(by_alias=True, mode="json")
        yield format_sse_event({"type": "complete", "view": payload})

    async def _aggregate_locked(
        self,
        credentials: Sequence[CredentialLike] | None = None,
        listener: ProgressCallback | None = None,
        *,
        generation: int | None = None,
    ) -> AggregateView:
        if generation is None:
            generation = self._cache.generation
        if credentials is None:
            credentials = await self._repository.list_credentials()
        self._cache.update_progress(AggregateProgress(total=len(credentials), running=bool(credentials)))

        async def track(progress: AggregateProgress) -> None:
            self._cache.update_progress(progress)
            if listener is not None:
                outcome = listener(progress)
                if outcome is not None:
                    await outcome

        try:
            view = await self._aggregator.aggregate(credentials, on_progress=track)
        except NoCredentialsError:
            self._cache.update_progress(AggregateProgress())
            raise
        if not self._cache.store(view, generation):
            logger.info("Discarding aggregate computed before a store write")
        return view


def _log_stream_outcome(task: asyncio.Task[AggregateView]) -> None:
    # The stream consumer may have disconnected before reading the result.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None and not isinstance(exc, NoCredentialsError):
        logger.error("Streamed usage aggregation failed", exc_info=exc)
