from __future__ import annotations

from datetime import datetime

from pydantic import Field

from app.core.usage.classification import classify
from app.core.usage.types import AggregateProgress, AggregateView, CredentialClass, UsageSnapshot, UsageTotals
from app.modules.shared.schemas import DashboardModel


class UsageTotalsPayload(DashboardModel):
    total_allowance: int = 0
    total_used: int = 0

    @classmethod
    def from_data(cls, totals: UsageTotals) -> "UsageTotalsPayload":
        return cls(total_allowance=totals.total_allowance, total_used=totals.total_used)


class UsageSnapshotPayload(DashboardModel):
    id: str
    name: str | None = None
    note: str | None = None
    masked_key: str
    classification: CredentialClass
    start_date: str | None = None
    end_date: str | None = None
    org_total_tokens_used: int | None = None
    total_allowance: int | None = None
    used_ratio: float | None = None
    remaining: int | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def from_data(cls, snapshot: UsageSnapshot) -> "UsageSnapshotPayload":
        payload = cls(
            id=snapshot.id,
            name=snapshot.name,
            note=snapshot.note,
            masked_key=snapshot.masked_key,
            classification=classify(snapshot),
        )
        usage = snapshot.usage
        if usage is None:
            payload.error = snapshot.error
            payload.status_code = getattr(snapshot.result, "status_code", None)
            return payload
        payload.start_date = usage.start_date
        payload.end_date = usage.end_date
        payload.org_total_tokens_used = usage.org_total_tokens_used
        payload.total_allowance = usage.total_allowance
        payload.used_ratio = usage.used_ratio
        payload.remaining = usage.remaining
        return payload


class AggregateViewResponse(DashboardModel):
    update_time: str
    computed_at: datetime
    total_count: int
    totals: UsageTotalsPayload
    data: list[UsageSnapshotPayload] = Field(default_factory=list)

    @classmethod
    def from_data(cls, view: AggregateView) -> "AggregateViewResponse":
        return cls(
            update_time=view.update_time,
            computed_at=view.computed_at,
            total_count=view.total_count,
            totals=UsageTotalsPayload.from_data(view.totals),
            data=[UsageSnapshotPayload.from_data(snapshot) for snapshot in view.snapshots],
        )


class AggregateProgressResponse(DashboardModel):
    completed: int
    total: int
    running: bool
    totals: UsageTotalsPayload

    @classmethod
    def from_data(cls, progress: AggregateProgress) -> "AggregateProgressResponse":
        return cls(
            completed=progress.completed,
            total=progress.total,
            running=progress.running,
            totals=UsageTotalsPayload.from_data(progress.totals),
        )


class AutoRefreshStatusResponse(DashboardModel):
    running: bool
    interval_seconds: float
    next_run_at: datetime | None = None


class AutoRefreshUpdateRequest(DashboardModel):
    enabled: bool
    interval_seconds: float | None = Field(default=None, gt=0)
