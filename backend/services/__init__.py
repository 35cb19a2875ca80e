"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - exceptions: error taxonomy shared by every service
    - concurrency: Redis locks for creation, matching and acceptance
    - pricing: fare engine, promo validation, pricing providers
    - matching: candidate search, atomic assignment, booking queue
    - refunds: cancellation fees and idempotent refunds
    - ride_management: ride state machine and lifecycle operations

Import from the subpackages, e.g. ``from services.ride_management import create_ride``.
"""
