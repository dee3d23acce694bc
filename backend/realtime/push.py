"""
Mobile push notifications through the Firebase Cloud Messaging HTTP v1 API.

Requests are authorised with an OAuth token minted from a service account
file. Sends are best-effort: missing credentials or a missing device token
disable the send, and HTTP failures are logged and reported as ``False``.
"""

import logging
from functools import lru_cache
from typing import Dict, Any, Optional

import google.auth.transport.requests
import requests
from django.conf import settings
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from drivers.models import DriverProfile

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


@lru_cache(maxsize=1)
def _credentials(path: str):
    return service_account.Credentials.from_service_account_file(path, scopes=[FCM_SCOPE])


def _access_token(credentials) -> str:
    if not credentials.valid:
        credentials.refresh(google.auth.transport.requests.Request())
    return credentials.token


def build_message(token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "token": token,
        "notification": {"title": title, "body": body},
        "android": {"priority": "high"},
    }
    if data:
        # FCM data values must be strings
        message["data"] = {k: str(v) for k, v in data.items()}
    return {"message": message}


def send_push(
    token: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """Send one notification to one device token."""
    credentials_file = getattr(settings, "FCM_CREDENTIALS_FILE", "")
    if not credentials_file:
        logger.debug("FCM_CREDENTIALS_FILE not set; push disabled")
        return False

    try:
        credentials = _credentials(credentials_file)
        project_id = getattr(settings, "FCM_PROJECT_ID", "") or credentials.project_id
        access_token = _access_token(credentials)
    except (OSError, ValueError, GoogleAuthError) as e:
        logger.warning("FCM credentials unavailable: %s", e)
        return False

    try:
        response = requests.post(
            FCM_SEND_URL.format(project_id=project_id),
            json=build_message(token, title, body, data),
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=getattr(settings, "FCM_TIMEOUT_SECONDS", 3),
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning("FCM send failed: %s", e)
        return False
    return True


def send_push_to_driver(
    driver_id: int,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """Push a notification to the driver's registered device, if any."""
    token = (
        DriverProfile.objects.filter(user_id=driver_id)
        .values_list("fcm_token", flat=True)
        .first()
    )
    if not token:
        logger.debug("Driver %s has no FCM token", driver_id)
        return False
    return send_push(token, title, body, data=data)
