"""
message_sender — automatic outbound message delivery service.

Sub-packages:
    core/       — config, logging, errors, database, cache, health, middleware
    messages/   — message model and durable store
    delivery/   — webhook delivery client
    scheduler/  — run context, per-message delivery unit, polling loop
    api/        — FastAPI control and listing routes
"""
