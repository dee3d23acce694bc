import logging

import redis
from django.conf import settings
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from app_backend.celery import app as celery_app
from drivers.models import DriverSubscription
from drivers.tasks import sweep_overtime_billing_task

logger = logging.getLogger(__name__)


class HealthCheckFailed(Exception):
    pass


def _check_database():
    DriverSubscription.objects.exists()


def _check_redis():
    client = redis.Redis.from_url(settings.REDIS_URL, socket_timeout=settings.HEALTH_CHECK_TIMEOUT_SECONDS)
    client.ping()


def _check_channel_layer():
    if get_channel_layer() is None:
        raise HealthCheckFailed("no channel layer configured")


def _check_celery():
    if sweep_overtime_billing_task.name not in celery_app.tasks:
        raise HealthCheckFailed(f"{sweep_overtime_billing_task.name} not registered")
    replies = celery_app.control.ping(timeout=settings.HEALTH_CHECK_TIMEOUT_SECONDS)
    if not replies:
        raise HealthCheckFailed("no worker replied")


HEALTH_CHECKS = (
    ("database", _check_database),
    ("redis", _check_redis),
    ("channels", _check_channel_layer),
    ("celery", _check_celery),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Report database, Redis, channel layer and billing worker status"""
    services = {}
    for name, check in HEALTH_CHECKS:
        try:
            check()
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            services[name] = f"unhealthy: {e}"
        else:
            services[name] = "healthy"

    healthy = all(state == "healthy" for state in services.values())
    return Response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
