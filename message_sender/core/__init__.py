"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON / pretty logging
    errors          — exception hierarchy & handlers
    database        — async PostgreSQL engine & ORM base
    cache           — Redis key/value sink
    health          — health check aggregation
    middleware      — request id & access logging
"""
