"""
Cancellation policy service - decides the outcome of driver cancellations.

This module handles:
    - Vehicle-type fee schedules (partial, full, no-show)
    - Fault attribution from elapsed time and movement toward pickup
"""

from .engine import (
    VALID_CANCELLATION_REASONS,
    CancellationCategory,
    CancellationInput,
    CancellationOutcome,
    StrikeType,
    compute_driver_cancellation_outcome,
    is_valid_cancellation_reason,
)
from .fees import (
    DEFAULT_FEE_SCHEDULE,
    FeeSchedule,
    normalize_vehicle_type,
)

__all__ = [
    "VALID_CANCELLATION_REASONS",
    "CancellationCategory",
    "CancellationInput",
    "CancellationOutcome",
    "StrikeType",
    "compute_driver_cancellation_outcome",
    "is_valid_cancellation_reason",
    "DEFAULT_FEE_SCHEDULE",
    "FeeSchedule",
    "normalize_vehicle_type",
]
