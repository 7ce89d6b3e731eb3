from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse

from app.core.errors import dashboard_error
from app.core.usage.aggregator import NoCredentialsError
from app.dependencies import UsageContext, get_usage_context, require_dashboard_session
from app.modules.usage.schemas import (
    AggregateProgressResponse,
    AggregateViewResponse,
    AutoRefreshStatusResponse,
    AutoRefreshUpdateRequest,
)
from app.modules.usage.scheduler import UsageRefreshScheduler

router = APIRouter(prefix="/api", tags=["dashboard"], dependencies=[Depends(require_dashboard_session)])


def _scheduler_status(scheduler: UsageRefreshScheduler) -> AutoRefreshStatusResponse:
    return AutoRefreshStatusResponse(
        running=scheduler.running,
        interval_seconds=scheduler.interval_seconds,
        next_run_at=scheduler.next_run_at,
    )


@router.get("/data", response_model=AggregateViewResponse)
async def get_usage_data(
    refresh: bool = Query(False),
    context: UsageContext = Depends(get_usage_context),
) -> AggregateViewResponse:
    view = await context.service.get_view(refresh=refresh)
    return AggregateViewResponse.from_data(view)


@router.get("/data/progress", response_model=AggregateProgressResponse)
async def get_usage_progress(
    context: UsageContext = Depends(get_usage_context),
) -> AggregateProgressResponse:
    return AggregateProgressResponse.from_data(context.service.progress)


@router.get("/data/stream", response_model=None)
async def stream_usage_data(
    context: UsageContext = Depends(get_usage_context),
) -> StreamingResponse | JSONResponse:
    generation = context.service.generation
    credentials = await context.service.load_credentials()
    if not credentials:
        return JSONResponse(
            status_code=400,
            content=dashboard_error("no_credentials", NoCredentialsError().message),
        )
    return StreamingResponse(
        context.service.stream_view(credentials, generation),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/auto-refresh", response_model=AutoRefreshStatusResponse)
async def get_auto_refresh(
    context: UsageContext = Depends(get_usage_context),
) -> AutoRefreshStatusResponse:
    return _scheduler_status(context.scheduler)


@router.put("/auto-refresh", response_model=AutoRefreshStatusResponse)
async def update_auto_refresh(
    payload: AutoRefreshUpdateRequest = Body(...),
    context: UsageContext = Depends(get_usage_context),
) -> AutoRefreshStatusResponse | JSONResponse:
    scheduler = context.scheduler
    if not payload.enabled:
        await scheduler.stop()
        return _scheduler_status(scheduler)
    if payload.interval_seconds is None and scheduler.interval_seconds <= 0:
        return JSONResponse(
            status_code=400,
            content=dashboard_error("invalid_interval", "An interval is required to enable auto refresh"),
        )
    await scheduler.start(payload.interval_seconds)
    return _scheduler_status(scheduler)


@router.post("/auto-refresh/reset", response_model=AutoRefreshStatusResponse)
async def reset_auto_refresh(
    context: UsageContext = Depends(get_usage_context),
) -> AutoRefreshStatusResponse:
    await context.scheduler.reset()
    return _scheduler_status(context.scheduler)
