import logging

from django.db.models import Exists, OuterRef, Subquery
from django.utils import timezone

from drivers.models import DriverProfile, DriverSubscription
from services.billing import (
    GracePeriodEndedError,
    apply_overtime_billing,
    grace_period,
    is_in_grace_period,
)

logger = logging.getLogger(__name__)

ONLINE_STATUSES = ("available", "busy")


def has_active_subscription(driver_id, now=None) -> bool:
    now = now or timezone.now()
    return DriverSubscription.objects.filter(driver_id=driver_id, expire__gte=now).exists()


# DRIVER STATUS UPDATE
def update_driver_status(profile: DriverProfile, new_status: str, now=None):
    """
    Update driver availability status.

    Going online settles any overtime first. A driver without an active
    subscription whose grace window has closed is refused.
    """
    now = now or timezone.now()
    overtime = None

    if new_status == "available" and not has_active_subscription(profile.user_id, now):
        overtime = apply_overtime_billing(profile.user_id, now=now)
        if overtime is not None and overtime.grace_period_ended:
            if profile.status != "offline":
                profile.status = "offline"
                profile.save(update_fields=["status"])
            logger.info("Driver %s kept offline: overtime grace period ended", profile.user_id)
            raise GracePeriodEndedError(
                "Subscription expired and the grace period has ended. Recharge to go online."
            )

    profile.status = new_status
    profile.save(update_fields=["status"])
    return profile, overtime


def update_driver_location(profile: DriverProfile, lat, lon):
    """
    Update driver location. Used by the HTTP location endpoint and read back
    when a ride is accepted or cancelled.
    """
    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    return profile


def get_subscription_status(driver_id, now=None):
    """
    Latest subscription with grace information, after settling overtime.

    Returns a (subscription, grace) tuple; either may be None.
    """
    now = now or timezone.now()
    apply_overtime_billing(driver_id, now=now)

    subscription = DriverSubscription.objects.filter(driver_id=driver_id).order_by("-expire").first()
    if subscription is None:
        return None, None

    grace = None
    if subscription.expire < now:
        if subscription.status == "active":
            subscription.status = "expired"
            subscription.save(update_fields=["status"])
        grace = is_in_grace_period(driver_id, now=now)
    return subscription, grace


# GRACE ENFORCEMENT
def force_offline_after_grace(driver_id, now=None) -> bool:
    """
    Take an online driver offline once the overtime grace window has closed
    without a renewal. Returns True when the status was changed.
    """
    now = now or timezone.now()
    if has_active_subscription(driver_id, now):
        return False
    grace = is_in_grace_period(driver_id, now=now)
    if grace is None or grace.in_grace:
        return False

    updated = DriverProfile.objects.filter(
        user_id=driver_id, status__in=ONLINE_STATUSES
    ).update(status="offline")
    if not updated:
        return False

    logger.info("Driver %s forced offline: overtime grace period ended", driver_id)
    from realtime.notifications import notify_driver_event
    try:
        notify_driver_event(
            "forced_offline",
            None,
            driver_id,
            "Subscription expired and the grace period has ended. Recharge to go online.",
        )
    except Exception:
        logger.exception("Failed to notify driver %s of forced offline", driver_id)
    return True


def drivers_online_past_grace(now=None):
    """Online drivers with no active subscription whose grace window has closed."""
    now = now or timezone.now()
    active = DriverSubscription.objects.filter(driver_id=OuterRef("user_id"), expire__gte=now)
    latest_expire = (
        DriverSubscription.objects.filter(driver_id=OuterRef("user_id"))
        .order_by("-expire")
        .values("expire")[:1]
    )
    return list(
        DriverProfile.objects.filter(status__in=ONLINE_STATUSES)
        .filter(~Exists(active))
        .annotate(latest_expire=Subquery(latest_expire))
        .filter(latest_expire__lt=now - grace_period())
        .order_by("user_id")
        .values_list("user_id", flat=True)
    )
