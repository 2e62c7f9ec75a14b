"""
FastAPI route: delivered / failed message listings.

Provides endpoints to:
    GET /api/v1/messages/sent     — paginated sent messages
    GET /api/v1/messages/failed   — paginated failed messages

Bad ``limit`` values (non-numeric or ≤ 0) fall back to 10 and bad
``offset`` values (non-numeric or < 0) to 0, rather than erroring.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from message_sender.api.deps import get_repository
from message_sender.api.schemas import MessageListResponse, MessageOut, Pagination
from message_sender.messages.models import MessageStatus
from message_sender.messages.repository import MessageRepository

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])

DEFAULT_LIMIT = 10


def _parse_int(raw: Optional[str], default: int, minimum: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value >= minimum else default


async def _list(
    repo: MessageRepository, status: MessageStatus,
    raw_limit: Optional[str], raw_offset: Optional[str],
) -> MessageListResponse:
    limit = _parse_int(raw_limit, DEFAULT_LIMIT, 1)
    offset = _parse_int(raw_offset, 0, 0)

    msgs = await repo.fetch_by_status(status, limit, offset)
    total = await repo.count_by_status(status)

    return MessageListResponse(
        data=[MessageOut.from_message(m) for m in msgs],
        pagination=Pagination(
            limit=limit,
            offset=offset,
            count=len(msgs),
            total=total,
            has_more=offset + limit < total,
        ),
    )


@router.get(
    "/sent",
    response_model=MessageListResponse,
    summary="List sent messages (with pagination)",
)
async def list_sent(
    limit: Optional[str] = Query(None, description="Number of messages to return"),
    offset: Optional[str] = Query(None, description="Number of messages to skip"),
    repo: MessageRepository = Depends(get_repository),
):
    return await _list(repo, MessageStatus.SENT, limit, offset)


@router.get(
    "/failed",
    response_model=MessageListResponse,
    summary="List failed messages (with pagination)",
)
async def list_failed(
    limit: Optional[str] = Query(None, description="Number of messages to return"),
    offset: Optional[str] = Query(None, description="Number of messages to skip"),
    repo: MessageRepository = Depends(get_repository),
):
    return await _list(repo, MessageStatus.FAILED, limit, offset)
