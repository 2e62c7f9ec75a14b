"""
Shared fixtures: in-memory stand-ins for the store, cache and sender.

The fakes implement the same async contracts the scheduler consumes, so
the delivery pipeline can be exercised without Postgres, Redis or a
live webhook.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from message_sender.core.config import DeliveryConfig
from message_sender.core.errors import CacheError, StoreError
from message_sender.messages.models import (
    DeliveryOutcome,
    DeliveryResult,
    Message,
    MessageStatus,
)
from message_sender.scheduler.context import RunContext


# ═══════════════════════════════════════════════════════════════════════════
# Result helpers
# ═══════════════════════════════════════════════════════════════════════════

def accepted(correlation_id: Optional[str] = None, status_code: int = 200) -> DeliveryResult:
    return DeliveryResult(
        outcome=DeliveryOutcome.ACCEPTED,
        correlation_id=correlation_id,
        status_code=status_code,
    )


def rejected(status_code: int = 500, error: str = "HTTP 500") -> DeliveryResult:
    return DeliveryResult(
        outcome=DeliveryOutcome.REJECTED, status_code=status_code, error=error,
    )


def unparseable(status_code: int = 200) -> DeliveryResult:
    return DeliveryResult(
        outcome=DeliveryOutcome.REJECTED,
        status_code=status_code,
        error="unparseable response: Expecting value",
    )


def transport_error() -> DeliveryResult:
    return DeliveryResult(outcome=DeliveryOutcome.TRANSPORT_ERROR, error="ConnectError")


def make_message(mid: int = 1, content: str = "Hello", phone: str = "+84901234567") -> Message:
    return Message(id=mid, phone_number=phone, content=content)


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════

class FakeStore:
    """Dict-backed message store."""

    def __init__(self, messages: Sequence[Message] = ()):
        self.messages: Dict[int, Message] = {m.id: m for m in messages}
        self.fetch_calls = 0
        self.fetch_errors = 0          # number of upcoming fetches that fail
        self.fail_writes = False
        self.ping_error = False
        self.writes: List[Tuple[str, int]] = []

    async def fetch_pending(self, limit: int) -> List[Message]:
        self.fetch_calls += 1
        if self.fetch_errors:
            self.fetch_errors -= 1
            raise StoreError("fetch_pending", "connection refused")
        pending = [m for m in self.messages.values() if m.status == MessageStatus.PENDING]
        return [Message(m.id, m.phone_number, m.content, m.status) for m in pending[:limit]]

    async def mark_sent(self, message_id: int) -> None:
        self.writes.append(("sent", message_id))
        if self.fail_writes:
            raise StoreError("mark_sent", "read-only transaction")
        self.messages[message_id].status = MessageStatus.SENT

    async def mark_failed(self, message_id: int) -> None:
        self.writes.append(("failed", message_id))
        if self.fail_writes:
            raise StoreError("mark_failed", "read-only transaction")
        self.messages[message_id].status = MessageStatus.FAILED

    async def fetch_by_status(self, status: MessageStatus, limit: int, offset: int = 0) -> List[Message]:
        rows = [m for m in self.messages.values() if m.status == status]
        return rows[offset:offset + limit]

    async def count_by_status(self, status: MessageStatus) -> int:
        return sum(1 for m in self.messages.values() if m.status == status)

    async def ping(self) -> None:
        if self.ping_error:
            raise StoreError("ping", "could not connect to server")

    def status_of(self, message_id: int) -> MessageStatus:
        return self.messages[message_id].status


class FakeCache:
    """Records every set call."""

    def __init__(self, fail: bool = False, healthy: bool = True):
        self.fail = fail
        self.healthy = healthy
        self.writes: List[Tuple[str, str, int]] = []

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        if self.fail:
            raise CacheError(key, "connection reset")
        self.writes.append((key, value, ttl))

    async def ping(self) -> bool:
        return self.healthy


Script = Union[DeliveryResult, Callable[[RunContext], DeliveryResult], BaseException]


class ScriptedSender:
    """
    Returns scripted results per destination phone number, in order.

    The last entry of a script repeats once the script is exhausted. A
    callable entry receives the run context (lets a test cancel mid-run);
    an exception entry is raised.
    """

    def __init__(self, default: Optional[Sequence[Script]] = None, delay: float = 0.0):
        self.scripts: Dict[str, List[Script]] = {}
        self.default = list(default or [accepted()])
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []

    def script(self, phone: str, *results: Script) -> "ScriptedSender":
        self.scripts[phone] = list(results)
        return self

    async def send(self, phone_number: str, content: str, ctx: RunContext) -> DeliveryResult:
        self.calls.append((phone_number, content))
        if self.delay:
            await asyncio.sleep(self.delay)
        script = self.scripts.get(phone_number, self.default)
        entry = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(ctx)
        return entry

    def calls_to(self, phone: str) -> int:
        return sum(1 for p, _ in self.calls if p == phone)


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fast_config() -> DeliveryConfig:
    """Millisecond backoff so retry scenarios finish quickly."""
    return DeliveryConfig(
        send_interval=60.0,
        batch_size=2,
        max_message_length=160,
        max_attempts=3,
        retry_base_delay=0.001,
        cache_key_prefix="insider:msg:sent",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def sender() -> ScriptedSender:
    return ScriptedSender()
