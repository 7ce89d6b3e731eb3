from __future__ import annotations

import asyncio

from app.core.usage.types import AggregateProgress, AggregateView


class UsageViewCache:
    """Latest aggregate view plus the progress of the aggregation in flight.

    Every store write bumps the generation. A view computed under an older
    generation is handed back to its caller but never cached.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._view: AggregateView | None = None
        self._progress = AggregateProgress()
        self._generation = 0

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def view(self) -> AggregateView | None:
        return self._view

    @property
    def progress(self) -> AggregateProgress:
        return self._progress

    @property
    def generation(self) -> int:
        return self._generation

    def store(self, view: AggregateView, generation: int) -> bool:
        if generation != self._generation:
            return False
        self._view = view
        return True

    def update_progress(self, progress: AggregateProgress) -> None:
        self._progress = progress

    def invalidate(self) -> None:
        self._generation += 1
        self._view = None

    def reset(self) -> None:
        self._lock = asyncio.Lock()
        self._view = None
        self._progress = AggregateProgress()
        self._generation = 0


_usage_view_cache = UsageViewCache()


def get_usage_view_cache() -> UsageViewCache:
    return _usage_view_cache
