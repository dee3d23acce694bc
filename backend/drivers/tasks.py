"""Celery tasks for driver billing background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def apply_overtime_billing_task(driver_id: int):
    """
    Celery task to bill one driver's overtime and enforce the grace window.

    Storage errors propagate so the task is marked failed; the next sweep
    retries safely because the checkpoint only moves on commit.
    """
    from services.billing import apply_overtime_billing
    from drivers.services import force_offline_after_grace

    result = apply_overtime_billing(driver_id)
    if result is None:
        logger.info("Driver %s has no expired subscription to bill", driver_id)
        return None

    forced_offline = False
    if result.grace_period_ended:
        forced_offline = force_offline_after_grace(driver_id)

    logger.info(
        "Overtime for driver %s: %s hour(s), charged %s, grace ended=%s, forced offline=%s",
        driver_id, result.hours, result.charged, result.grace_period_ended, forced_offline,
    )
    return {
        "charged": str(result.charged),
        "hours": result.hours,
        "grace_period_ended": result.grace_period_ended,
        "forced_offline": forced_offline,
    }


@shared_task
def sweep_overtime_billing_task():
    """
    Periodic task: queue billing for every driver who owes overtime or is
    still online after their grace window closed.
    """
    from services.billing import drivers_with_billable_overtime
    from drivers.services import drivers_online_past_grace

    driver_ids = sorted(set(drivers_with_billable_overtime()) | set(drivers_online_past_grace()))
    for driver_id in driver_ids:
        apply_overtime_billing_task.delay(driver_id)

    logger.info("Queued overtime billing for %d driver(s)", len(driver_ids))
    return len(driver_ids)
