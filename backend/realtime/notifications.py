"""
Notification helpers for sending events to connected clients.

This module provides functions to:
- Send ride-related events to drivers and passengers over the channel layer
- Tell a driver about overtime charges (channel layer + mobile push)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from .push import send_push_to_driver

logger = logging.getLogger(__name__)


# ---------------------- Ride Event Notifications ----------------------

def notify_driver_event(
    event_type: str,
    ride,
    driver_id: int | None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<driver_id>
    
    Args:
        event_type: Handler name in consumer (ride_cancelled, overtime_charged, ...)
        ride: RideRequest model instance, or None for account-level events
        driver_id: Target driver's user ID
        message: Optional message to include
        extra: Additional payload data
    
    Returns:
        True if sent successfully, False otherwise
    """
    if not driver_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    payload = {
        "type": event_type,
        "driver_id": driver_id,
        **(extra or {}),
    }
    if ride is not None:
        from rides.serializers import RideRequestSerializer
        payload["ride_id"] = ride.id
        payload["ride_data"] = RideRequestSerializer(ride).data

    if message:
        payload["message"] = message

    logger.debug("WS -> driver_%s: %s", driver_id, payload)
    async_to_sync(channel_layer.group_send)(f"driver_{driver_id}", payload)

    return True


def notify_passenger_event(
    event_type: str,
    ride,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send ride-related event to the passenger through: user_<passenger_id>
    
    Args:
        event_type: Handler name in consumer (ride_accepted, ride_cancelled, ...)
        ride: RideRequest model instance
        message: Optional message to include
        extra: Additional payload data
    
    Returns:
        True if sent successfully, False otherwise
    """
    passenger_id = ride.passenger_id
    if not passenger_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    from rides.serializers import RideRequestSerializer

    payload = {
        "type": event_type,
        "ride_id": ride.id,
        "status": ride.status,
        "ride_data": RideRequestSerializer(ride).data,
        **(extra or {}),
    }

    if message:
        payload["message"] = message

    logger.debug("WS -> user_%s: %s", passenger_id, payload)
    async_to_sync(channel_layer.group_send)(f"user_{passenger_id}", payload)

    return True


def notify_ride_group(ride, event_type: str, message: str) -> None:
    """Send notification to all participants in a ride group."""
    try:
        channel_layer = get_channel_layer()
        if channel_layer:
            async_to_sync(channel_layer.group_send)(
                f'ride_{ride.id}',
                {
                    'type': event_type,
                    'ride_id': ride.id,
                    'message': message,
                }
            )
    except Exception:
        logger.exception("Failed to notify ride group for ride %s", ride.id)


# ---------------------- Wallet Notifications ----------------------

def notify_overtime_charge(
    driver_id: int,
    amount: Decimal,
    hours: int,
    rate: Decimal,
    grace_period_ended: bool,
    grace_hours_remaining: float,
) -> None:
    """
    Tell the driver an overtime charge was taken from their wallet.

    Never raises: billing has already committed by the time this runs.
    """
    if grace_period_ended:
        title = "Grace period ended"
        body = f"Grace period ended. {amount} was deducted. Recharge to go online again."
    else:
        title = "Overtime charge applied"
        body = (
            f"Subscription expired. {amount} ({hours} hr x {rate}/hr) deducted. "
            f"{grace_hours_remaining:.0f}h left before you must recharge."
        )
    data = {
        "type": "overtime",
        "amount": str(amount),
        "hours": str(hours),
        "graceEnded": str(grace_period_ended).lower(),
    }

    try:
        send_push_to_driver(driver_id, title, body, data=data)
    except Exception:
        logger.exception("Failed to push overtime notice to driver %s", driver_id)

    try:
        notify_driver_event('overtime_charged', None, driver_id, body, extra=data)
    except Exception:
        logger.exception("Failed to send overtime event to driver %s", driver_id)
