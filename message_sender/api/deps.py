"""Request-scoped accessors for the services wired onto ``app.state``."""

from __future__ import annotations

from fastapi import Request

from message_sender.messages.repository import MessageRepository
from message_sender.scheduler.scheduler import Scheduler


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def get_repository(request: Request) -> MessageRepository:
    return request.app.state.repository
