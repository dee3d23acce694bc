"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP layer.

Modules:
    - cancellation_policy: Pure decision engine for driver cancellations
    - billing: Driver wallet ledger and subscription overtime
    - ride_management: Driver ride lifecycle operations
"""
