from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Protocol, TypeAlias

INVALID_RESPONSE_STRUCTURE = "invalid response structure"
FETCH_FAILED = "fetch failed"


class CredentialLike(Protocol):
    id: str
    secret: str
    name: str | None
    note: str | None
    created_at: int


class CredentialClass(StrEnum):
    VALID = "valid"
    ZERO_BALANCE = "zero_balance"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class UsageData:
    masked_key: str
    org_total_tokens_used: int
    total_allowance: int
    used_ratio: float
    start_date: str
    end_date: str

    @property
    def remaining(self) -> int:
        return self.total_allowance - self.org_total_tokens_used


@dataclass(frozen=True, slots=True)
class UsageFetchError:
    masked_key: str
    error: str
    status_code: int | None = None


UsageFetchResult: TypeAlias = UsageData | UsageFetchError


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    id: str
    name: str | None
    note: str | None
    result: UsageFetchResult

    @property
    def masked_key(self) -> str:
        return self.result.masked_key

    @property
    def error(self) -> str | None:
        if isinstance(self.result, UsageFetchError):
            return self.result.error
        return None

    @property
    def usage(self) -> UsageData | None:
        if isinstance(self.result, UsageData):
            return self.result
        return None


@dataclass(frozen=True, slots=True)
class UsageTotals:
    total_allowance: int = 0
    total_used: int = 0


@dataclass(frozen=True, slots=True)
class AggregateView:
    snapshots: list[UsageSnapshot]
    totals: UsageTotals
    total_count: int
    computed_at: datetime
    update_time: str


@dataclass(frozen=True, slots=True)
class AggregateProgress:
    completed: int = 0
    total: int = 0
    totals: UsageTotals = field(default_factory=UsageTotals)
    running: bool = False


def compute_totals(snapshots: Sequence[UsageSnapshot | None]) -> UsageTotals:
    allowance = 0
    used = 0
    for snapshot in snapshots:
        if snapshot is None or snapshot.usage is None:
            continue
        allowance += snapshot.usage.total_allowance
        used += snapshot.usage.org_total_tokens_used
    return UsageTotals(total_allowance=allowance, total_used=used)
