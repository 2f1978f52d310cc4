"""
reCAPTCHA (v2/v3) verification run before any credential exchange.

When RECAPTCHA_SECRET is not configured (local development, emulators) the
check is skipped with a warning.
"""
import logging
from typing import Any

import requests

from config import PROVIDER_REQUEST_TIMEOUT, RECAPTCHA_MIN_SCORE, RECAPTCHA_VERIFY_URL, get_secret
from errors import BrokerError, FailedPrecondition, PermissionDenied

logger = logging.getLogger(__name__)


def validate_recaptcha(
    token: str | None,
    *,
    secret: str | None = None,
    http: Any = requests,
    min_score: float = RECAPTCHA_MIN_SCORE,
) -> None:
    """Raise unless the token verifies; v3 scores below min_score are rejected."""
    if secret is None:
        secret = get_secret("RECAPTCHA_SECRET", required=False)
    if not secret:
        logger.warning("RECAPTCHA_SECRET missing - skipping reCAPTCHA validation (NOT SECURE FOR PROD)")
        return
    if not token:
        raise FailedPrecondition("Missing reCAPTCHA token")
    try:
        resp = http.post(
            RECAPTCHA_VERIFY_URL,
            data={"secret": secret, "response": token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=PROVIDER_REQUEST_TIMEOUT,
        )
        data = resp.json()
    except (requests.exceptions.RequestException, ValueError) as exc:
        logger.error("reCAPTCHA validation error: %s", exc)
        raise BrokerError("reCAPTCHA validation error") from exc
    if not isinstance(data, dict):
        logger.error("reCAPTCHA validation error: unexpected response %s", type(data).__name__)
        raise BrokerError("reCAPTCHA validation error")
    if not data.get("success"):
        raise PermissionDenied("reCAPTCHA failed")
    score = data.get("score")
    if isinstance(score, (int, float)) and score < min_score:
        raise PermissionDenied("reCAPTCHA score too low")
