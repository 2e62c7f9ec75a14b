"""
Message repository — the durable store consumed by the scheduler and API.

Every query opens its own short-lived session from the factory, so the
repository is safe for concurrent use by independent delivery units.
SQLAlchemy errors are wrapped in StoreError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Union

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from message_sender.core.errors import StoreError
from message_sender.messages.models import (
    Message,
    MessageRecord,
    MessageStatus,
    is_valid_status,
)

logger = logging.getLogger(__name__)


def _as_status(status: Union[MessageStatus, str]) -> MessageStatus:
    if not is_valid_status(status):
        raise ValueError(f"unknown message status: {status!r}")
    return MessageStatus(status)


class MessageRepository:
    """Async store over the ``messages`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch_pending(self, limit: int) -> List[Message]:
        """Pending rows in store-chosen order, at most ``limit``."""
        stmt = (
            select(MessageRecord)
            .where(MessageRecord.status == MessageStatus.PENDING)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("fetch_pending", str(e)) from e
        return [r.to_message() for r in rows]

    async def mark_sent(self, message_id: int) -> None:
        await self._set_status(message_id, MessageStatus.SENT)

    async def mark_failed(self, message_id: int) -> None:
        await self._set_status(message_id, MessageStatus.FAILED)

    async def _set_status(self, message_id: int, status: MessageStatus) -> None:
        stmt = (
            update(MessageRecord)
            .where(MessageRecord.id == message_id)
            .values(status=status, sent_at=datetime.now(timezone.utc))
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"mark_{status.value}", str(e), message_id=message_id) from e

    async def fetch_by_status(
        self, status: Union[MessageStatus, str], limit: int, offset: int = 0,
    ) -> List[Message]:
        """Paginated listing, most recent terminal write first."""
        status = _as_status(status)
        stmt = (
            select(MessageRecord)
            .where(MessageRecord.status == status)
            .order_by(MessageRecord.sent_at.desc())
            .limit(limit)
            .offset(offset)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("fetch_by_status", str(e), status=status.value) from e
        return [r.to_message() for r in rows]

    async def count_by_status(self, status: Union[MessageStatus, str]) -> int:
        status = _as_status(status)
        stmt = select(func.count()).select_from(MessageRecord).where(
            MessageRecord.status == status
        )
        try:
            async with self._session_factory() as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as e:
            raise StoreError("count_by_status", str(e), status=status.value) from e

    async def ping(self) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise StoreError("ping", str(e)) from e
