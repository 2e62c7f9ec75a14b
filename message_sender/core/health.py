"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Database connectivity (PostgreSQL)
    • Cache connectivity (Redis)
    • Scheduler state (running / stopped — informational only)

Only a database failure makes the service unhealthy; a cache outage
degrades it, since cache writes are best-effort.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from message_sender.core.cache import RedisCache
from message_sender.core.config import settings
from message_sender.core.errors import StoreError

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    timestamp: str = ""
    uptime_seconds: float = 0.0
    scheduler: str = "stopped"
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        services = {c.name: c.status.value for c in self.components}
        for c in self.components:
            if c.status != HealthStatus.HEALTHY and c.message:
                services[c.name] = f"{c.status.value}: {c.message}"
        services["scheduler"] = self.scheduler
        return {
            "status": self.status.value,
            "version": self.version,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "services": services,
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


async def check_database(repo) -> ComponentHealth:
    """Check PostgreSQL connectivity."""
    comp = ComponentHealth(name="database")
    start = time.monotonic()
    try:
        await repo.ping()
    except StoreError as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_redis(cache: RedisCache) -> ComponentHealth:
    """Check Redis connectivity."""
    comp = ComponentHealth(name="redis")
    start = time.monotonic()
    if not await cache.ping():
        comp.status = HealthStatus.DEGRADED
        comp.message = "ping failed"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(repo, cache, scheduler) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
        scheduler="running" if scheduler.is_running() else "stopped",
    )

    for coro in (check_database(repo), check_redis(cache)):
        report.components.append(await coro)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
