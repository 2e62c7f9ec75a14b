"""
FastAPI application entry point.

Run with:
    uvicorn message_sender.main:app --port 8080

Or:
    python -m message_sender.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from message_sender.core.cache import RedisCache
from message_sender.core.config import DeliveryConfig, settings
from message_sender.core.database import close_db, create_engine, create_session_factory
from message_sender.core.errors import register_error_handlers
from message_sender.core.health import HealthStatus, run_health_check
from message_sender.core.logging_config import get_logger, setup_logging
from message_sender.core.middleware import RequestLoggingMiddleware

# ── Delivery pipeline ──
from message_sender.delivery.client import DeliveryClient
from message_sender.messages.repository import MessageRepository
from message_sender.scheduler.scheduler import Scheduler

# ── API routers ──
from message_sender.api.v1.messages import router as messages_router
from message_sender.api.v1.scheduler import router as scheduler_router

logger = get_logger(__name__)


def create_app(
    *,
    repository: Optional[MessageRepository] = None,
    cache: Optional[RedisCache] = None,
    sender: Optional[DeliveryClient] = None,
    config: Optional[DeliveryConfig] = None,
    auto_start: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators that are not injected are created from settings in the
    lifespan and closed on shutdown; injected ones are left to the caller.
    """
    auto_start = settings.SCHEDULER_AUTO_START if auto_start is None else auto_start

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        engine = None
        repo = repository
        if repo is None:
            engine = create_engine()
            repo = MessageRepository(create_session_factory(engine))
        redis_cache = cache or RedisCache()
        client = sender or DeliveryClient()

        scheduler = Scheduler(store=repo, sender=client, cache=redis_cache, config=config)
        app.state.repository = repo
        app.state.cache = redis_cache
        app.state.scheduler = scheduler

        if auto_start:
            scheduler.start()

        yield

        logger.info("Shutting down %s", settings.APP_NAME)
        scheduler.stop()
        if not await scheduler.wait_stopped(settings.SHUTDOWN_TIMEOUT_SECONDS):
            logger.warning("Scheduler loop did not exit within %.0fs",
                           settings.SHUTDOWN_TIMEOUT_SECONDS)
        if sender is None:
            await client.aclose()
        if cache is None:
            await redis_cache.close()
        if engine is not None:
            await close_db(engine)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Automatic outbound message sender. Periodically picks up pending "
            "messages, delivers them to the configured webhook with retry and "
            "backoff, and records the outcome."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    app.include_router(scheduler_router)
    app.include_router(messages_router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Database, cache and scheduler status; 503 if the database is down."""
        report = await run_health_check(
            app.state.repository, app.state.cache, app.state.scheduler,
        )
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("message_sender.main:app", host=settings.HOST, port=settings.PORT)
