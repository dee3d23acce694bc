"""
Driver cancellation outcome engine.

Given the facts of a ride at the moment the driver cancels, decide whether the
rider is charged, whether the driver is compensated, and which strike (if any)
the driver receives. The function is pure: no ORM access, no clock reads.
The caller supplies ``now`` and persists the returned outcome.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from common.utils.geo import calculate_distance, distance_toward_pickup
from .fees import (
    DEFAULT_FEE_SCHEDULE,
    DEFAULT_BUCKET,
    FREE_CANCEL_WINDOW_SECONDS,
    LOW_MOVEMENT_METERS,
    MODERATE_MOVEMENT_METERS,
    NOSHOW_WAIT_RADIUS_METERS,
    FeeSchedule,
)

VALID_CANCELLATION_REASONS = frozenset({
    "vehicle_breakdown",
    "accident",
    "medical_emergency",
    "unsafe_pickup",
    "road_blockage",
})


class StrikeType(str, Enum):
    NONE = "none"
    LIGHT = "light"
    FULL = "full"


class CancellationCategory(str, Enum):
    VALID_REASON = "valid_reason"
    FREE_WINDOW = "free_window"
    RIDER_NOSHOW = "rider_noshow"
    LOW_MOVEMENT_FAULT = "low_movement_fault"
    MODERATE_EFFORT = "moderate_effort"
    HIGH_EFFORT = "high_effort"


@dataclass(frozen=True)
class CancellationInput:
    """Snapshot of a ride at the moment the driver cancels."""
    ride_id: Any
    driver_id: Any
    driver_lat: float
    driver_lng: float
    pickup_latitude: float
    pickup_longitude: float
    driver_accepted_at: Optional[datetime] = None
    driver_lat_at_accept: Optional[float] = None
    driver_lng_at_accept: Optional[float] = None
    driver_arrived_at_pickup_at: Optional[datetime] = None
    rider_call_attempted: bool = False
    rider_call_attempted_at: Optional[datetime] = None
    cancellation_reason_type: Optional[str] = None
    cancellation_reason: Optional[str] = None
    requested_vehicle_type: Optional[str] = None
    vehicle_type: Optional[str] = None


@dataclass(frozen=True)
class CancellationOutcome:
    """Decision returned to the ride handler."""
    rider_charged_amount: int
    driver_compensation_amount: int
    driver_strike_type: StrikeType
    driver_cancellation_reason_type: Optional[str]
    category: CancellationCategory
    message: str

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["driver_strike_type"] = self.driver_strike_type.value
        data["category"] = self.category.value
        return data


def is_valid_cancellation_reason(reason_type: Optional[str]) -> bool:
    return bool(reason_type) and reason_type in VALID_CANCELLATION_REASONS


def _charged(amount: int, strike: StrikeType, category: CancellationCategory, message: str) -> CancellationOutcome:
    # Rider charge passes to the driver one-to-one.
    return CancellationOutcome(
        rider_charged_amount=amount,
        driver_compensation_amount=amount,
        driver_strike_type=strike,
        driver_cancellation_reason_type=None,
        category=category,
        message=message,
    )


def compute_driver_cancellation_outcome(
    cancellation_input: CancellationInput,
    now: datetime,
    fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> CancellationOutcome:
    """
    Decide the outcome of a driver-initiated cancellation.

    Branches are checked in a fixed order and the first match wins:

    1. valid operational reason: no charge, no strike
    2. within the free window after acceptance: no charge, no strike
    3. rider no-show (arrived, close to pickup, waited, tried calling):
       rider pays the no-show fee to the driver, no strike
    4. distance-based fault on how far the driver moved toward pickup:
       under 300 m is a full strike with no charge, under 1.5 km a partial
       fee with a light strike, anything more the full fee with a light strike

    Args:
        cancellation_input: Ride facts at cancellation time
        now: Current time, timezone-aware like the stored timestamps
        fee_schedule: Vehicle-type fee tables

    Returns:
        CancellationOutcome
    """
    ci = cancellation_input
    vehicle_type = ci.vehicle_type or ci.requested_vehicle_type or DEFAULT_BUCKET

    if is_valid_cancellation_reason(ci.cancellation_reason_type):
        return CancellationOutcome(
            rider_charged_amount=0,
            driver_compensation_amount=0,
            driver_strike_type=StrikeType.NONE,
            driver_cancellation_reason_type=ci.cancellation_reason_type,
            category=CancellationCategory.VALID_REASON,
            message="Cancelled with valid reason - no charge, no strike.",
        )

    seconds_since_accept = 0.0
    if ci.driver_accepted_at is not None:
        seconds_since_accept = (now - ci.driver_accepted_at).total_seconds()

    if seconds_since_accept <= FREE_CANCEL_WINDOW_SECONDS:
        return _charged(
            0,
            StrikeType.NONE,
            CancellationCategory.FREE_WINDOW,
            f"Free cancellation within {FREE_CANCEL_WINDOW_SECONDS} seconds.",
        )

    # No-show: arrived, still near pickup, waited long enough, tried calling.
    if ci.driver_arrived_at_pickup_at is not None:
        distance_to_pickup = calculate_distance(
            ci.driver_lat, ci.driver_lng, ci.pickup_latitude, ci.pickup_longitude
        )
        if distance_to_pickup <= NOSHOW_WAIT_RADIUS_METERS:
            wait_required = fee_schedule.noshow_wait(vehicle_type)
            waited_minutes = (now - ci.driver_arrived_at_pickup_at).total_seconds() / 60
            called = ci.rider_call_attempted or ci.rider_call_attempted_at is not None
            if waited_minutes >= wait_required and called:
                fee = fee_schedule.noshow(vehicle_type)
                return _charged(
                    fee,
                    StrikeType.NONE,
                    CancellationCategory.RIDER_NOSHOW,
                    f"Rider no-show after {wait_required} min wait - rider charged {fee}, "
                    "driver compensated, no strike.",
                )

    # Without an accept position the driver is treated as not having moved.
    accept_lat = ci.driver_lat_at_accept if ci.driver_lat_at_accept is not None else ci.driver_lat
    accept_lng = ci.driver_lng_at_accept if ci.driver_lng_at_accept is not None else ci.driver_lng
    progress = distance_toward_pickup(
        accept_lat,
        accept_lng,
        ci.driver_lat,
        ci.driver_lng,
        ci.pickup_latitude,
        ci.pickup_longitude,
    )

    if progress < LOW_MOVEMENT_METERS:
        return _charged(
            0,
            StrikeType.FULL,
            CancellationCategory.LOW_MOVEMENT_FAULT,
            f"Driver cancelled with less than {LOW_MOVEMENT_METERS}m movement - full strike, no charge.",
        )

    if progress < MODERATE_MOVEMENT_METERS:
        fee = fee_schedule.partial(vehicle_type)
        return _charged(
            fee,
            StrikeType.LIGHT,
            CancellationCategory.MODERATE_EFFORT,
            f"Moderate effort (300m-1.5km) - rider charged {fee}, driver compensated, light strike.",
        )

    fee = fee_schedule.full(vehicle_type)
    return _charged(
        fee,
        StrikeType.LIGHT,
        CancellationCategory.HIGH_EFFORT,
        f"High effort (1.5km+) - rider charged {fee}, driver compensated, light strike.",
    )
