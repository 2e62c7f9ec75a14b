"""
models.py — Data structures shared across the delivery pipeline.

Defines:
    • MessageStatus    — lifecycle states of an outbound message
    • Message          — a message as seen by the scheduler and API
    • MessageRecord    — ORM row for the ``messages`` table
    • DeliveryOutcome  — tri-state result of one webhook call
    • DeliveryResult   — outcome plus correlation id / diagnostics
    • DeliveryAttempt  — ephemeral record of one attempt inside a unit
    • UnitState        — delivery unit state machine

═══════════════════════════════════════════════════════════════════════════
MESSAGE LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    pending ──► sent      (an attempt was accepted)
       │
       └─────► failed    (every attempt rejected or errored)

Transitions are monotonic. Over-length messages and messages whose
delivery was cancelled stay pending and are picked up by a later pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from message_sender.core.database import Base


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class MessageStatus(str, Enum):
    """Persisted lifecycle status of a message."""
    PENDING = "pending"
    SENT    = "sent"
    FAILED  = "failed"

    @classmethod
    def values(cls) -> List[str]:
        return [s.value for s in cls]


def is_valid_status(value: str) -> bool:
    return value in MessageStatus.values()


class DeliveryOutcome(str, Enum):
    """Result of a single webhook call."""
    ACCEPTED        = "accepted"
    REJECTED        = "rejected"          # non-accepted status or unparseable body
    TRANSPORT_ERROR = "transport_error"   # connect/timeout/protocol error


class UnitState(str, Enum):
    """Delivery unit state machine."""
    VALIDATING       = "validating"
    ATTEMPTING       = "attempting"
    AWAITING_BACKOFF = "awaiting_backoff"
    SENT             = "sent"       # terminal, persisted
    FAILED           = "failed"     # terminal, persisted
    SKIPPED          = "skipped"    # over-length, nothing written
    ABANDONED        = "abandoned"  # cancelled, nothing written

    @property
    def is_terminal(self) -> bool:
        return self in (UnitState.SENT, UnitState.FAILED,
                        UnitState.SKIPPED, UnitState.ABANDONED)


# ═══════════════════════════════════════════════════════════════════════════
# ORM
# ═══════════════════════════════════════════════════════════════════════════

class MessageRecord(Base):
    """Row in the ``messages`` table (see scripts/init.sql)."""
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[MessageStatus] = mapped_column(
        SAEnum(
            MessageStatus,
            name="message_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=MessageStatus.PENDING,
        index=True,
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )

    def to_message(self) -> "Message":
        return Message(
            id=self.id,
            phone_number=self.phone_number,
            content=self.content,
            status=MessageStatus(self.status),
            sent_at=self.sent_at,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Message:
    """
    An outbound text message.

    Attributes
    ----------
    id : int
        Store-assigned identifier.
    phone_number : str
        Destination address.
    content : str
        Body text, bounded by MAX_MESSAGE_LENGTH.
    status : MessageStatus
    sent_at : datetime | None
        Set on the terminal write (sent or failed).
    """
    id: int
    phone_number: str
    content: str
    status: MessageStatus = MessageStatus.PENDING
    sent_at: Optional[datetime] = None


@dataclass
class DeliveryResult:
    """What the delivery client reports back for one call."""
    outcome: DeliveryOutcome
    correlation_id: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def accepted(self) -> bool:
        return self.outcome == DeliveryOutcome.ACCEPTED


@dataclass
class DeliveryAttempt:
    """One attempt inside a delivery unit. Never persisted."""
    attempt: int                                # 0-based
    message_id: int
    result: Optional[DeliveryResult] = None
    backoff_delay: Optional[float] = None       # seconds before the next attempt


@dataclass
class PassSummary:
    """Counters for one scheduler pass."""
    fetched: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    abandoned: int = 0
    errors: int = 0
    states: List[UnitState] = field(default_factory=list)

    def record(self, state: UnitState) -> None:
        self.states.append(state)
        if state == UnitState.SENT:
            self.sent += 1
        elif state == UnitState.FAILED:
            self.failed += 1
        elif state == UnitState.SKIPPED:
            self.skipped += 1
        elif state == UnitState.ABANDONED:
            self.abandoned += 1
