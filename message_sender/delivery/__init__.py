"""
delivery — Outbound webhook client.

The client is stateless beyond its connection pool. Retry logic lives
in scheduler.delivery_unit.
"""
