"""
Pydantic schemas for the control and listing API.

Separated from the route handlers so they are reusable across the
codebase (route handlers, tests).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from message_sender.messages.models import Message


def utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class SchedulerActionResponse(BaseModel):
    status: str = Field("success", examples=["success"])
    message: str = Field(..., examples=["Scheduler started successfully"])
    time: str = Field(default_factory=utc_now_rfc3339, examples=["2025-10-19T08:10:00+00:00"])


class SchedulerStatusResponse(BaseModel):
    running: bool
    time: str = Field(default_factory=utc_now_rfc3339)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class MessageOut(BaseModel):
    id: int = Field(..., examples=[1])
    phone_number: str = Field(..., examples=["+84901234567"])
    content: str = Field(..., examples=["Hello from the sender!"])
    status: str = Field(..., examples=["sent"])
    sent_at: Optional[datetime] = Field(None, examples=["2025-10-19T07:41:45Z"])

    @classmethod
    def from_message(cls, m: Message) -> "MessageOut":
        return cls(
            id=m.id,
            phone_number=m.phone_number,
            content=m.content,
            status=m.status.value,
            sent_at=m.sent_at,
        )


class Pagination(BaseModel):
    limit: int = Field(..., examples=[10])
    offset: int = Field(..., examples=[0])
    count: int = Field(..., examples=[2])
    total: int = Field(..., examples=[5])
    has_more: bool = Field(..., examples=[True])


class MessageListResponse(BaseModel):
    data: List[MessageOut]
    pagination: Pagination

