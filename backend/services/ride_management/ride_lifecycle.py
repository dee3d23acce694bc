"""
Core ride lifecycle operations for drivers.

This module contains the business logic for accepting, arriving at and
cancelling rides, extracted from the views layer for better testability and
reuse. Driver cancellations are judged by the cancellation policy engine and
the outcome (charges, compensation, strikes) is recorded here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any

from django.db import transaction
from django.utils import timezone

from drivers.models import DriverProfile
from rides.models import RideRequest, DriverCancellationStrike, DriverValidReasonCancel
from services.billing import credit_wallet
from services.cancellation_policy import (
    CancellationInput,
    CancellationOutcome,
    StrikeType,
    compute_driver_cancellation_outcome,
)
from .exceptions import (
    RideNotFoundError,
    RideNotAvailableError,
    DriverNotAvailableError,
    DriverLocationUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[RideRequest] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _get_driver_profile(driver) -> DriverProfile:
    try:
        return driver.driver_profile
    except DriverProfile.DoesNotExist:
        raise RideNotFoundError("Driver profile not found")


def _get_accepted_ride(driver, ride_id: int, lock: bool = False) -> RideRequest:
    qs = RideRequest.objects.select_for_update() if lock else RideRequest.objects
    try:
        return qs.get(id=ride_id, driver=driver, status='accepted')
    except RideRequest.DoesNotExist:
        raise RideNotFoundError("Ride not found or not accepted by you")


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


# ===================== Driver Operations =====================

@transaction.atomic
def accept_ride(
    driver,
    ride_id: int,
    latitude=None,
    longitude=None,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Accept a pending ride request.

    The driver's position at this moment is stored on the ride; the
    cancellation policy later measures progress toward pickup from it.

    Args:
        driver: User model instance (driver)
        ride_id: ID of the ride to accept
        latitude: Driver latitude at accept (defaults to last known location)
        longitude: Driver longitude at accept (defaults to last known location)
        now: Acceptance time (defaults to timezone.now())

    Returns:
        RideResult with the accepted ride
    """
    now = now or timezone.now()
    driver_profile = _get_driver_profile(driver)

    if driver_profile.status != 'available':
        raise DriverNotAvailableError("Please set your status to available before accepting rides")

    try:
        ride = RideRequest.objects.select_for_update().get(id=ride_id, status='pending')
    except RideRequest.DoesNotExist:
        raise RideNotAvailableError("This ride was already handled or cancelled")

    if latitude is None or longitude is None:
        latitude = driver_profile.current_latitude
        longitude = driver_profile.current_longitude

    ride.driver = driver
    ride.status = 'accepted'
    ride.accepted_at = now
    ride.driver_lat_at_accept = latitude
    ride.driver_lng_at_accept = longitude
    ride.save(update_fields=[
        'driver', 'status', 'accepted_at', 'driver_lat_at_accept', 'driver_lng_at_accept',
    ])

    driver_profile.status = 'busy'
    driver_profile.save(update_fields=['status'])

    from realtime.notifications import notify_passenger_event
    try:
        notify_passenger_event(
            'ride_accepted',
            ride,
            'Your Ride has been Accepted! The Driver is on the way.'
        )
    except Exception:
        logger.exception("Failed to notify passenger of acceptance for ride %s", ride.id)

    return RideResult(
        success=True,
        ride=ride,
        message="Ride Accepted Successfully! Navigate to pickup location."
    )


@transaction.atomic
def mark_arrived_at_pickup(driver, ride_id: int, now: Optional[datetime] = None) -> RideResult:
    """Record that the driver reached the pickup point. Repeated calls keep the first time."""
    ride = _get_accepted_ride(driver, ride_id, lock=True)

    if ride.driver_arrived_at_pickup_at:
        return RideResult(
            success=True,
            ride=ride,
            message="Already marked as arrived at pickup",
        )

    ride.driver_arrived_at_pickup_at = now or timezone.now()
    ride.save(update_fields=['driver_arrived_at_pickup_at'])

    from realtime.notifications import notify_passenger_event
    try:
        notify_passenger_event('driver_arrived', ride, 'Your driver has arrived at the pickup point.')
    except Exception:
        logger.exception("Failed to notify passenger of arrival for ride %s", ride.id)

    return RideResult(success=True, ride=ride, message="Arrived at pickup recorded")


@transaction.atomic
def record_rider_call_attempt(driver, ride_id: int, now: Optional[datetime] = None) -> RideResult:
    """Record that the driver tried to call the rider. Repeated calls keep the first time."""
    ride = _get_accepted_ride(driver, ride_id, lock=True)

    if not ride.rider_call_attempted_at:
        ride.rider_call_attempted_at = now or timezone.now()
        ride.save(update_fields=['rider_call_attempted_at'])

    return RideResult(success=True, ride=ride, message="Call attempt recorded")


def build_cancellation_input(
    ride: RideRequest,
    driver_profile: DriverProfile,
    latitude=None,
    longitude=None,
    reason: str = "",
    reason_type: Optional[str] = None,
) -> CancellationInput:
    """Assemble the engine input from the stored ride and the driver's position."""
    if latitude is None or longitude is None:
        latitude = driver_profile.current_latitude
        longitude = driver_profile.current_longitude
    if latitude is None or longitude is None:
        raise DriverLocationUnavailableError("Current driver location is required to cancel")

    return CancellationInput(
        ride_id=ride.id,
        driver_id=ride.driver_id,
        driver_lat=float(latitude),
        driver_lng=float(longitude),
        pickup_latitude=float(ride.pickup_latitude),
        pickup_longitude=float(ride.pickup_longitude),
        driver_accepted_at=ride.accepted_at,
        driver_lat_at_accept=_as_float(ride.driver_lat_at_accept),
        driver_lng_at_accept=_as_float(ride.driver_lng_at_accept),
        driver_arrived_at_pickup_at=ride.driver_arrived_at_pickup_at,
        rider_call_attempted=ride.rider_call_attempted_at is not None,
        rider_call_attempted_at=ride.rider_call_attempted_at,
        cancellation_reason_type=reason_type or None,
        cancellation_reason=reason or None,
        requested_vehicle_type=ride.requested_vehicle_type,
        vehicle_type=driver_profile.vehicle_type,
    )


def _apply_outcome(ride: RideRequest, outcome: CancellationOutcome, reason: str, now: datetime) -> None:
    ride.status = 'cancelled_driver'
    ride.cancelled_at = now
    ride.cancellation_reason = reason or "Cancelled by driver"
    ride.cancellation_category = outcome.category.value
    ride.rider_charged_amount = Decimal(outcome.rider_charged_amount)
    ride.driver_compensation_amount = Decimal(outcome.driver_compensation_amount)
    ride.driver_strike_type = outcome.driver_strike_type.value
    ride.driver_cancellation_reason_type = outcome.driver_cancellation_reason_type
    ride.save(update_fields=[
        'status', 'cancelled_at', 'cancellation_reason', 'cancellation_category',
        'rider_charged_amount', 'driver_compensation_amount', 'driver_strike_type',
        'driver_cancellation_reason_type',
    ])

    if outcome.driver_strike_type != StrikeType.NONE:
        DriverCancellationStrike.objects.create(
            driver_id=ride.driver_id,
            ride=ride,
            strike_type=outcome.driver_strike_type.value,
            cancelled_at=now,
        )

    if outcome.driver_cancellation_reason_type:
        DriverValidReasonCancel.objects.create(
            driver_id=ride.driver_id,
            ride=ride,
            reason_type=outcome.driver_cancellation_reason_type,
            cancelled_at=now,
        )

    if outcome.driver_compensation_amount > 0:
        credit_wallet(
            ride.driver_id,
            outcome.driver_compensation_amount,
            description=f"Cancellation compensation for ride #{ride.id} ({outcome.category.value})",
            reference_type='cancellation_compensation',
            reference_id=ride.id,
        )


@transaction.atomic
def cancel_ride_by_driver(
    driver,
    ride_id: int,
    reason: str = "",
    reason_type: Optional[str] = None,
    latitude=None,
    longitude=None,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Cancel a ride by driver and settle the cancellation policy outcome.

    Args:
        driver: User model instance (driver)
        ride_id: ID of the ride to cancel
        reason: Free-text cancellation reason
        reason_type: Structured reason tag (e.g. vehicle_breakdown)
        latitude: Current driver latitude (defaults to last known location)
        longitude: Current driver longitude (defaults to last known location)
        now: Cancellation time (defaults to timezone.now())

    Returns:
        RideResult with the outcome in ``extra["outcome"]``

    Raises:
        RideNotFoundError: If the ride is not accepted by this driver
        DriverLocationUnavailableError: If no driver position is known
    """
    now = now or timezone.now()
    driver_profile = _get_driver_profile(driver)
    ride = _get_accepted_ride(driver, ride_id, lock=True)

    cancellation_input = build_cancellation_input(
        ride, driver_profile, latitude, longitude, reason=reason, reason_type=reason_type,
    )
    outcome = compute_driver_cancellation_outcome(cancellation_input, now)
    logger.info(
        "Driver %s cancelled ride %s: %s (charge %s, strike %s)",
        driver.id, ride.id, outcome.category.value,
        outcome.rider_charged_amount, outcome.driver_strike_type.value,
    )

    _apply_outcome(ride, outcome, reason, now)

    # Make driver available
    driver_profile.status = 'available'
    driver_profile.save(update_fields=['status'])

    from realtime.notifications import notify_passenger_event, notify_ride_group
    try:
        notify_passenger_event(
            'ride_cancelled',
            ride,
            'Driver cancelled the ride. Please request again.',
            extra={'rider_charged_amount': outcome.rider_charged_amount},
        )
    except Exception:
        logger.exception("Failed to notify passenger of driver cancellation for ride %s", ride.id)
    notify_ride_group(ride, 'ride_cancelled', 'Driver cancelled the ride.')

    return RideResult(
        success=True,
        ride=ride,
        message=outcome.message,
        extra={
            "outcome": outcome,
            "valid_reason_cancels_last_7_days": count_recent_valid_reason_cancels(driver.id, now=now),
        },
    )


def count_recent_valid_reason_cancels(driver_id: int, days: int = 7, now: Optional[datetime] = None) -> int:
    """Number of penalty-free valid-reason cancellations in the last ``days`` days."""
    now = now or timezone.now()
    return DriverValidReasonCancel.objects.filter(
        driver_id=driver_id,
        cancelled_at__gte=now - timedelta(days=days),
    ).count()


def get_current_driver_ride(driver) -> Optional[RideRequest]:
    """Get driver's current active ride."""
    return RideRequest.objects.filter(
        driver=driver,
        status='accepted'
    ).select_related('passenger').first()
