"""
scheduler — Polling loop and per-message delivery state machine.

Sub-modules:
    context        — cooperative cancellation token for a run cycle
    delivery_unit  — attempt / backoff / retry for one message
    scheduler      — start/stop lifecycle, ticking, batch fan-out and join
"""
