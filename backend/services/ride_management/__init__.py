"""
Ride management service - Driver-side ride lifecycle operations.

This module handles:
    - Accepting rides (recording the accept position)
    - Arrival and rider-contact evidence for no-show claims
    - Cancelling rides and settling the cancellation policy outcome
    - Querying ride status
"""

from .ride_lifecycle import (
    RideResult,
    accept_ride,
    mark_arrived_at_pickup,
    record_rider_call_attempt,
    build_cancellation_input,
    cancel_ride_by_driver,
    count_recent_valid_reason_cancels,
    get_current_driver_ride,
)

from .exceptions import (
    RideNotFoundError,
    RideNotAvailableError,
    DriverNotAvailableError,
    DriverLocationUnavailableError,
)

__all__ = [
    # Lifecycle operations
    "RideResult",
    "accept_ride",
    "mark_arrived_at_pickup",
    "record_rider_call_attempt",
    "build_cancellation_input",
    "cancel_ride_by_driver",
    "count_recent_valid_reason_cancels",
    "get_current_driver_ride",
    # Exceptions
    "RideNotFoundError",
    "RideNotAvailableError",
    "DriverNotAvailableError",
    "DriverLocationUnavailableError",
]
