from __future__ import annotations

DEFAULT_FETCH_CONCURRENCY = 5
