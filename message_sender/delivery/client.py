"""
client.py — Outbound webhook delivery via a shared httpx connection pool.

═══════════════════════════════════════════════════════════════════════════
WIRE CONTRACT
═══════════════════════════════════════════════════════════════════════════

    POST {WEBHOOK_URL}
    Content-Type: application/json

    {"to": "+84901234567", "content": "Hello"}

    200 / 201 / 202  → accepted, body may carry {"messageId": "<opaque>"}
    anything else    → rejected (retryable)
    connect/timeout  → transport error (retryable)

An accepted status whose body is not a JSON object is reported as
rejected so the caller retries it.

═══════════════════════════════════════════════════════════════════════════
TIMEOUTS & POOL
═══════════════════════════════════════════════════════════════════════════

    total call      10s   (deadline around the whole exchange)
    connect/TLS      5s
    response wait    5s   (httpx read timeout)
    pool            ≤10 connections, ≤2 kept alive (single target host)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from message_sender.core.config import settings
from message_sender.messages.models import DeliveryOutcome, DeliveryResult
from message_sender.scheduler.context import RunContext

logger = logging.getLogger(__name__)

ACCEPTED_STATUS_CODES = frozenset({200, 201, 202})


def build_payload(phone_number: str, content: str) -> Dict[str, str]:
    return {"to": phone_number, "content": content}


def parse_correlation_id(body: bytes) -> Optional[str]:
    """
    Extract ``messageId`` from an accepted response body.

    A JSON ``null`` body is a success without an id. Raises ValueError when
    the body is any other non-object or ``messageId`` is not a string.
    """
    data = json.loads(body)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"expected JSON object, got {type(data).__name__}")
    message_id = data.get("messageId")
    if message_id is None:
        return None
    if not isinstance(message_id, str):
        raise ValueError(f"messageId must be a string, got {type(message_id).__name__}")
    return message_id or None


class DeliveryClient:
    """
    Stateless sender bound to one webhook URL.

    Usage:
        client = DeliveryClient()
        result = await client.send("+84901234567", "Hello", ctx)
        if result.accepted:
            ...
        await client.aclose()
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        total_timeout: Optional[float] = None,
    ):
        self.webhook_url = webhook_url or settings.WEBHOOK_URL
        self.total_timeout = total_timeout or settings.DELIVERY_TIMEOUT_SECONDS
        self._http_client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    settings.DELIVERY_TIMEOUT_SECONDS,
                    connect=settings.DELIVERY_CONNECT_TIMEOUT_SECONDS,
                    read=settings.DELIVERY_RESPONSE_TIMEOUT_SECONDS,
                    pool=settings.DELIVERY_CONNECT_TIMEOUT_SECONDS,
                ),
                limits=httpx.Limits(
                    max_connections=settings.DELIVERY_MAX_CONNECTIONS,
                    max_keepalive_connections=settings.DELIVERY_MAX_KEEPALIVE,
                    keepalive_expiry=settings.SEND_INTERVAL_SECONDS + 30,
                ),
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(
        self, phone_number: str, content: str, ctx: RunContext,
    ) -> DeliveryResult:
        """
        Issue one delivery call, racing it against ``ctx``.

        Never raises for HTTP-level failures; those come back as a
        rejected or transport_error result.
        """
        if ctx.cancelled:
            return DeliveryResult(
                outcome=DeliveryOutcome.TRANSPORT_ERROR,
                error="cancelled before send",
                cancelled=True,
            )

        call = asyncio.ensure_future(
            asyncio.wait_for(
                self._post(build_payload(phone_number, content)),
                timeout=self.total_timeout,
            )
        )
        watcher = asyncio.ensure_future(ctx.wait_cancelled())
        try:
            await asyncio.wait({call, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()

        if not call.done():
            call.cancel()
            try:
                await call
            except asyncio.CancelledError:
                pass
            return DeliveryResult(
                outcome=DeliveryOutcome.TRANSPORT_ERROR,
                error="cancelled during send",
                cancelled=True,
            )

        try:
            return call.result()
        except asyncio.TimeoutError:
            return DeliveryResult(
                outcome=DeliveryOutcome.TRANSPORT_ERROR,
                error=f"timed out after {self.total_timeout:.1f}s",
            )

    async def _post(self, payload: Dict[str, Any]) -> DeliveryResult:
        client = self._get_client()
        try:
            async with client.stream(
                "POST",
                self.webhook_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            ) as response:
                # Read the whole body either way so the connection returns
                # to the pool clean.
                body = await response.aread()
                status = response.status_code
        except httpx.HTTPError as e:
            return DeliveryResult(
                outcome=DeliveryOutcome.TRANSPORT_ERROR,
                error=f"{type(e).__name__}: {e}",
            )

        if status not in ACCEPTED_STATUS_CODES:
            return DeliveryResult(
                outcome=DeliveryOutcome.REJECTED,
                status_code=status,
                error=f"HTTP {status}",
            )

        try:
            correlation_id = parse_correlation_id(body)
        except ValueError as e:
            return DeliveryResult(
                outcome=DeliveryOutcome.REJECTED,
                status_code=status,
                error=f"unparseable response: {e}",
            )

        return DeliveryResult(
            outcome=DeliveryOutcome.ACCEPTED,
            correlation_id=correlation_id,
            status_code=status,
        )
