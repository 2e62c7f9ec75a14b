"""
delivery_unit.py — Per-message retry state machine.

═══════════════════════════════════════════════════════════════════════════
STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    VALIDATING ──(too long)──────────────────────────► SKIPPED
        │
        ▼
    ATTEMPTING ──(accepted)──► mark sent, cache id ──► SENT
        │
        ├──(rejected / error, last attempt)──► mark failed ──► FAILED
        │
        └──(rejected / error)──► AWAITING_BACKOFF ──(delay)──► ATTEMPTING
                                        │
                                        └──(cancelled)──────► ABANDONED

Backoff formula:
    delay = base × 2^attempt        (attempt is 0-based)

    With base=1s and 3 attempts the unit waits 1s after the first
    failure and 2s after the second; the third failure is terminal.

SKIPPED and ABANDONED write nothing, so the message stays pending.
Store and cache write failures after a successful delivery are logged
and never turn the delivery into a failure.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from message_sender.core.config import DeliveryConfig
from message_sender.core.errors import CacheError, StoreError
from message_sender.messages.models import (
    DeliveryAttempt,
    DeliveryResult,
    Message,
    UnitState,
)
from message_sender.scheduler.context import RunContext

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    async def fetch_pending(self, limit: int) -> List[Message]: ...
    async def mark_sent(self, message_id: int) -> None: ...
    async def mark_failed(self, message_id: int) -> None: ...


class CacheSink(Protocol):
    async def set(self, key: str, value: str, ttl: int = 0) -> None: ...


class Sender(Protocol):
    async def send(self, phone_number: str, content: str, ctx: RunContext) -> DeliveryResult: ...


def compute_backoff(attempt: int, base: float) -> float:
    """Delay in seconds after a failed 0-based ``attempt``."""
    return base * (2 ** attempt)


class DeliveryUnit:
    """Drives one message to a terminal state within one pass."""

    def __init__(
        self,
        message: Message,
        ctx: RunContext,
        *,
        store: MessageStore,
        sender: Sender,
        cache: CacheSink,
        config: DeliveryConfig,
    ):
        self.message = message
        self.ctx = ctx
        self.store = store
        self.sender = sender
        self.cache = cache
        self.config = config
        self.state = UnitState.VALIDATING
        self.attempts: List[DeliveryAttempt] = []

    async def run(self) -> UnitState:
        msg = self.message

        if len(msg.content) > self.config.max_message_length:
            logger.warning(
                "Message %d content too long (%d chars), skipping",
                msg.id, len(msg.content),
                extra={"message_id": msg.id},
            )
            self.state = UnitState.SKIPPED
            return self.state

        for attempt in range(self.config.max_attempts):
            self.state = UnitState.ATTEMPTING
            record = DeliveryAttempt(attempt=attempt, message_id=msg.id)
            self.attempts.append(record)

            result = await self.sender.send(msg.phone_number, msg.content, self.ctx)
            record.result = result

            if result.cancelled:
                logger.info(
                    "Message %d delivery cancelled (attempt %d)",
                    msg.id, attempt + 1,
                    extra={"message_id": msg.id, "attempt": attempt + 1},
                )
                self.state = UnitState.ABANDONED
                return self.state

            if result.accepted:
                logger.info(
                    "Message %d sent successfully (attempt %d)",
                    msg.id, attempt + 1,
                    extra={"message_id": msg.id, "attempt": attempt + 1,
                           "status_code": result.status_code},
                )
                await self._on_sent(result.correlation_id)
                self.state = UnitState.SENT
                return self.state

            logger.warning(
                "Failed to send message %d (attempt %d): %s",
                msg.id, attempt + 1, result.error or result.outcome.value,
                extra={"message_id": msg.id, "attempt": attempt + 1,
                       "outcome": result.outcome.value,
                       "status_code": result.status_code},
            )

            if attempt == self.config.max_attempts - 1:
                break

            delay = compute_backoff(attempt, self.config.retry_base_delay)
            record.backoff_delay = delay
            self.state = UnitState.AWAITING_BACKOFF
            logger.info(
                "Message %d retrying in %.1fs",
                msg.id, delay,
                extra={"message_id": msg.id, "delay_s": delay},
            )
            if await self.ctx.wait(delay):
                logger.info(
                    "Message %d retry cancelled, leaving it pending", msg.id,
                    extra={"message_id": msg.id},
                )
                self.state = UnitState.ABANDONED
                return self.state

        logger.error(
            "Message %d failed after %d attempts, marking as failed",
            msg.id, self.config.max_attempts,
            extra={"message_id": msg.id},
        )
        try:
            await self.store.mark_failed(msg.id)
        except StoreError as e:
            logger.error("Failed to mark message %d as failed: %s", msg.id, e)
        self.state = UnitState.FAILED
        return self.state

    async def _on_sent(self, correlation_id: Optional[str]) -> None:
        msg = self.message
        sent_at = datetime.now(timezone.utc)

        try:
            await self.store.mark_sent(msg.id)
        except StoreError as e:
            logger.error("Failed to mark message %d as sent: %s", msg.id, e)

        if not correlation_id:
            return

        key = f"{self.config.cache_key_prefix}:{correlation_id}"
        value = sent_at.isoformat(timespec="seconds")
        try:
            await self.cache.set(key, value, ttl=0)
        except CacheError as e:
            logger.warning("Failed to cache messageId %s: %s", correlation_id, e)
            return
        logger.info(
            "Cached messageId=%s sent_at=%s", correlation_id, value,
            extra={"correlation_id": correlation_id},
        )
