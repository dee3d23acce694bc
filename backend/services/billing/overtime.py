"""
Overtime billing for drivers whose subscription has expired.

After expiry a driver may keep working for a grace window (4 hours by
default). Each whole hour inside that window is charged to the wallet at a
flat hourly rate; the wallet may go negative. Once the window closes the
caller must force the driver offline.

Hours from the moment a later subscription starts are covered by that
subscription and are never billed, even inside the grace window.

The billing checkpoint (``last_overtime_billing_at``) advances by exactly the
number of hours billed, never to "now", so leftover minutes carry over into
the next run instead of being dropped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from functools import partial
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import OuterRef, Q, Subquery
from django.utils import timezone

from drivers.models import DriverSubscription
from .wallet import debit_wallet, get_wallet_balance

logger = logging.getLogger(__name__)

ONE_HOUR = timedelta(hours=1)


@dataclass
class OvertimeResult:
    """Result of one overtime billing run."""
    charged: Decimal
    hours: int
    wallet_balance_after: Decimal
    grace_period_ended: bool
    grace_hours_remaining: float


@dataclass
class GraceStatus:
    in_grace: bool
    grace_hours_remaining: float


def overtime_rate_per_hour() -> Decimal:
    return Decimal(getattr(settings, 'OVERTIME_RATE_PER_HOUR', 10))


def grace_period() -> timedelta:
    return timedelta(hours=getattr(settings, 'OVERTIME_GRACE_HOURS', 4))


def _latest_expired_subscription(driver_id: int, now: datetime, lock: bool = False) -> Optional[DriverSubscription]:
    qs = DriverSubscription.objects.filter(driver_id=driver_id, expire__lt=now).order_by('-expire', '-id')
    if lock:
        qs = qs.select_for_update()
    return qs.first()


def _renewals_of(driver_id, expire):
    """Later subscriptions of the same driver, earliest start first."""
    return DriverSubscription.objects.filter(driver_id=driver_id, expire__gt=expire).order_by('start_time')


def _renewal_start(subscription: DriverSubscription) -> Optional[datetime]:
    start = _renewals_of(subscription.driver_id, subscription.expire).values_list('start_time', flat=True).first()
    return _covered_from(subscription, start)


def _covered_from(subscription: DriverSubscription, renewal_start: Optional[datetime]) -> Optional[datetime]:
    # An early renewal covers the driver from the old expiry onward.
    if renewal_start is None:
        return None
    return max(renewal_start, subscription.expire)


def _billing_window(subscription: DriverSubscription, covered_from: Optional[datetime], now: datetime):
    """(checkpoint, billable_end) for the overtime still owed on ``subscription``."""
    billable_end = min(now, subscription.expire + grace_period())
    if covered_from is not None:
        billable_end = min(billable_end, covered_from)
    checkpoint = subscription.last_overtime_billing_at or subscription.expire
    return checkpoint, billable_end


def _whole_hours(checkpoint: datetime, billable_end: datetime) -> int:
    return max(0, (billable_end - checkpoint) // ONE_HOUR)


def _grace_hours_remaining(grace_ends_at: datetime, now: datetime) -> float:
    return max(0.0, (grace_ends_at - now) / ONE_HOUR)


def apply_overtime_billing(driver_id: int, now: Optional[datetime] = None) -> Optional[OvertimeResult]:
    """
    Charge the driver for whole overtime hours accrued since the last checkpoint.

    The subscription row is locked for the duration of the transaction so
    that concurrent runs for the same driver serialize and cannot bill the
    same hour twice. The wallet debit, its ledger entry and the checkpoint
    advance commit or roll back together. Hours covered by a renewal are
    not billed, and a renewed driver never has ``grace_period_ended`` set.

    Args:
        driver_id: Driver user id
        now: Current time (defaults to timezone.now())

    Returns:
        OvertimeResult, or None when the driver has no expired subscription
    """
    now = now or timezone.now()
    rate = overtime_rate_per_hour()

    with transaction.atomic():
        subscription = _latest_expired_subscription(driver_id, now, lock=True)
        if subscription is None:
            return None

        covered_from = _renewal_start(subscription)
        renewed = covered_from is not None and covered_from <= now

        grace_ends_at = subscription.expire + grace_period()
        grace_period_ended = now > grace_ends_at and not renewed
        grace_hours_remaining = _grace_hours_remaining(grace_ends_at, now)

        checkpoint, billable_end = _billing_window(subscription, covered_from, now)
        hours_to_bill = _whole_hours(checkpoint, billable_end)

        if hours_to_bill == 0:
            return OvertimeResult(
                charged=Decimal('0'),
                hours=0,
                wallet_balance_after=get_wallet_balance(driver_id),
                grace_period_ended=grace_period_ended,
                grace_hours_remaining=grace_hours_remaining,
            )

        charge = rate * hours_to_bill
        wallet, _ = debit_wallet(
            driver_id,
            charge,
            description=(
                f"Overtime: {charge} ({hours_to_bill} hr @ {rate}/hr after subscription expiry)"
            ),
            reference_type='overtime',
            reference_id=subscription.id,
        )

        subscription.last_overtime_billing_at = checkpoint + hours_to_bill * ONE_HOUR
        subscription.save(update_fields=['last_overtime_billing_at'])

        logger.info(
            "Billed driver %s %s for %s overtime hour(s) on subscription %s",
            driver_id, charge, hours_to_bill, subscription.id,
        )

        from realtime.notifications import notify_overtime_charge
        transaction.on_commit(partial(
            notify_overtime_charge,
            driver_id,
            amount=charge,
            hours=hours_to_bill,
            rate=rate,
            grace_period_ended=grace_period_ended,
            grace_hours_remaining=grace_hours_remaining,
        ))

    return OvertimeResult(
        charged=charge,
        hours=hours_to_bill,
        wallet_balance_after=wallet.balance,
        grace_period_ended=grace_period_ended,
        grace_hours_remaining=grace_hours_remaining,
    )


def is_in_grace_period(driver_id: int, now: Optional[datetime] = None) -> Optional[GraceStatus]:
    """Whether the driver is still inside the post-expiry grace window."""
    now = now or timezone.now()
    subscription = _latest_expired_subscription(driver_id, now)
    if subscription is None:
        return None
    grace_ends_at = subscription.expire + grace_period()
    return GraceStatus(
        in_grace=now <= grace_ends_at,
        grace_hours_remaining=_grace_hours_remaining(grace_ends_at, now),
    )


def drivers_with_billable_overtime(now: Optional[datetime] = None) -> List[int]:
    """
    Driver ids that owe at least one whole overtime hour right now.

    Only each driver's latest expired subscription is considered, and hours
    covered by a renewal are not owed, matching what ``apply_overtime_billing``
    would bill.
    """
    now = now or timezone.now()

    latest_expired = (
        DriverSubscription.objects.filter(driver_id=OuterRef('driver_id'), expire__lt=now)
        .order_by('-expire', '-id')
        .values('id')[:1]
    )
    renewal_start = _renewals_of(OuterRef('driver_id'), OuterRef('expire')).values('start_time')[:1]

    # A billable hour needs at least an hour between checkpoint and now.
    hour_ago = now - ONE_HOUR
    candidates = (
        DriverSubscription.objects.filter(id=Subquery(latest_expired), expire__lte=hour_ago)
        .filter(Q(last_overtime_billing_at__isnull=True) | Q(last_overtime_billing_at__lte=hour_ago))
        .annotate(renewal_start=Subquery(renewal_start))
        .only('id', 'driver', 'expire', 'last_overtime_billing_at')
        .order_by('driver_id')
    )

    driver_ids = []
    for subscription in candidates:
        covered_from = _covered_from(subscription, subscription.renewal_start)
        if _whole_hours(*_billing_window(subscription, covered_from, now)) > 0:
            driver_ids.append(subscription.driver_id)
    return driver_ids
