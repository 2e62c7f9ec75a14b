"""
FastAPI route: scheduler control.

Provides endpoints to:
    POST /api/v1/scheduler/start   — start automatic sending
    POST /api/v1/scheduler/stop    — stop automatic sending
    GET  /api/v1/scheduler/status  — report whether the loop is running

Start and stop are idempotent and always report success.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from message_sender.api.deps import get_scheduler
from message_sender.api.schemas import SchedulerActionResponse, SchedulerStatusResponse
from message_sender.scheduler.scheduler import Scheduler

router = APIRouter(prefix="/api/v1/scheduler", tags=["scheduler"])


@router.post(
    "/start",
    response_model=SchedulerActionResponse,
    summary="Start automatic message sending",
    description=(
        "Starts the background scheduler that periodically sends pending "
        "messages every configured interval."
    ),
)
async def start_scheduler(scheduler: Scheduler = Depends(get_scheduler)):
    scheduler.start()
    return SchedulerActionResponse(message="Scheduler started successfully")


@router.post(
    "/stop",
    response_model=SchedulerActionResponse,
    summary="Stop automatic message sending",
    description="Stops the background scheduler until it is started again.",
)
async def stop_scheduler(scheduler: Scheduler = Depends(get_scheduler)):
    scheduler.stop()
    return SchedulerActionResponse(message="Scheduler stopped successfully")


@router.get("/status", response_model=SchedulerStatusResponse)
async def scheduler_status(scheduler: Scheduler = Depends(get_scheduler)):
    return SchedulerStatusResponse(running=scheduler.is_running())
