"""End-to-end scenarios for the idempotency guard and fanout dispatch.

Each module drives a small FastAPI application through the guard and
checks one aspect of the observable behaviour.
"""
