"""
scheduler.py — Polling loop that owns the on/off lifecycle.

═══════════════════════════════════════════════════════════════════════════
LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    STOPPED ──start()──► RUNNING ──stop()──► STOPPED

    start() while running and stop() while stopped are no-ops.

    start():  new RunContext → running=True → spawn loop task
    loop:     pass now, then one pass per tick until the context is cancelled
    stop():   cancel RunContext → running=False → return (no drain)

═══════════════════════════════════════════════════════════════════════════
PASS
═══════════════════════════════════════════════════════════════════════════

    fetch_pending(batch_size)
        │
        ├── error → log, skip pass (loop keeps ticking)
        │
        ▼
    one DeliveryUnit per message ──► asyncio.gather (join barrier)

The next fetch is never issued before the previous pass has joined, so
at most one batch of units is in flight at any time.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Set

from message_sender.core.config import DeliveryConfig
from message_sender.core.logging_config import bind_cycle, unbind_cycle
from message_sender.messages.models import PassSummary, UnitState
from message_sender.scheduler.context import RunContext
from message_sender.scheduler.delivery_unit import (
    CacheSink,
    DeliveryUnit,
    MessageStore,
    Sender,
)

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Single-instance delivery scheduler.

    Usage:
        scheduler = Scheduler(store=repo, sender=client, cache=cache)
        scheduler.start()          # from inside a running event loop
        scheduler.is_running()     # True
        scheduler.stop()
    """

    def __init__(
        self,
        *,
        store: MessageStore,
        sender: Sender,
        cache: CacheSink,
        config: Optional[DeliveryConfig] = None,
    ):
        self.store = store
        self.sender = sender
        self.cache = cache
        self.config = config or DeliveryConfig.from_settings()

        self._lock = threading.Lock()
        self._running = False
        self._ctx: Optional[RunContext] = None
        self._task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ── Control surface ──

    def start(self) -> None:
        """Start polling. Must be called with an event loop running."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._running:
                return
            ctx = RunContext()
            self._ctx = ctx
            self._running = True
            self._loop = loop
            self._task = loop.create_task(
                self._run(ctx), name=f"delivery-scheduler-{ctx.cycle_id}",
            )
            self._tasks.add(self._task)
            self._task.add_done_callback(self._tasks.discard)
        logger.info("Scheduler started (cycle %d)", ctx.cycle_id)

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            ctx = self._ctx
            loop = self._loop
            self._running = False
        self._cancel(ctx, loop)
        logger.info("Scheduler stopped (cycle %d)", ctx.cycle_id)

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    async def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every loop task still winding down, including ones from
        earlier cycles after a quick stop/start. Returns True if all exited.
        """
        pending = {t for t in self._tasks if not t.done()}
        if not pending:
            return True
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        return not still_running

    @staticmethod
    def _cancel(ctx: RunContext, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is not None and running is not loop:
            loop.call_soon_threadsafe(ctx.cancel)
        else:
            ctx.cancel()

    # ── Loop ──

    async def _run(self, ctx: RunContext) -> None:
        token = bind_cycle(ctx.cycle_id)
        try:
            await self._loop_until_cancelled(ctx)
        finally:
            unbind_cycle(token)
        logger.info("Scheduler loop exited (cycle %d)", ctx.cycle_id)

    async def _loop_until_cancelled(self, ctx: RunContext) -> None:
        loop = asyncio.get_running_loop()
        interval = self.config.send_interval
        next_tick = loop.time() + interval

        await self.run_pass(ctx)

        while not ctx.cancelled:
            now = loop.time()
            while next_tick <= now:
                next_tick += interval
            if await ctx.wait(next_tick - now):
                break
            next_tick += interval
            await self.run_pass(ctx)

    async def run_pass(self, ctx: RunContext) -> PassSummary:
        """Fetch one batch, deliver it concurrently, and join."""
        summary = PassSummary()
        if ctx.cancelled:
            return summary

        try:
            messages = await self.store.fetch_pending(self.config.batch_size)
        except Exception as e:
            logger.error("DB fetch error: %s", e)
            summary.errors += 1
            return summary

        summary.fetched = len(messages)
        logger.info(
            "Fetched %d unsent messages", len(messages),
            extra={"fetched": len(messages)},
        )
        if not messages:
            return summary

        units = [
            DeliveryUnit(
                msg, ctx,
                store=self.store,
                sender=self.sender,
                cache=self.cache,
                config=self.config,
            )
            for msg in messages
        ]
        results = await asyncio.gather(
            *(unit.run() for unit in units), return_exceptions=True,
        )

        for unit, result in zip(units, results):
            if isinstance(result, UnitState) and result.is_terminal:
                summary.record(result)
            else:
                summary.errors += 1
                logger.error(
                    "Delivery unit for message %d ended abnormally: %r",
                    unit.message.id, result,
                    exc_info=result if isinstance(result, BaseException) else None,
                    extra={"message_id": unit.message.id},
                )

        logger.info(
            "Pass complete: sent=%d failed=%d skipped=%d abandoned=%d errors=%d",
            summary.sent, summary.failed, summary.skipped,
            summary.abandoned, summary.errors,
        )
        return summary
