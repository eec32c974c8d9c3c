"""
Resend webhook verification and event handling

Resend delivers webhooks through Svix. The svix-signature header holds one
or more space-separated "v1,<base64>" entries; each is an HMAC-SHA256 of
"{svix-timestamp}.{raw body}" keyed with the webhook signing secret.
"""
import base64
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_SECONDS = 300

EVENT_TYPES = (
    "email.sent",
    "email.delivered",
    "email.delivery_delayed",
    "email.bounced",
    "email.complained",
    "email.opened",
    "email.clicked",
)


def is_configured() -> bool:
    return bool(settings.RESEND_WEBHOOK_SECRET)


def _expected_signature(payload: str, timestamp: str, secret: str) -> str:
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(
    payload: str,
    signature_header: Optional[str],
    timestamp: Optional[str],
    secret: Optional[str] = None,
) -> bool:
    secret = settings.RESEND_WEBHOOK_SECRET if secret is None else secret
    if not signature_header or not timestamp or not secret:
        logger.error("Missing signature, timestamp or secret for Resend webhook verification")
        return False

    expected = _expected_signature(payload, timestamp, secret).encode("utf-8")

    for entry in signature_header.split():
        version, _, signature = entry.partition(",")
        if version != "v1" or not signature:
            continue
        if hmac.compare_digest(signature.encode("utf-8"), expected):
            return True

    return False


def validate_timestamp(timestamp: Optional[str], tolerance_seconds: int = TIMESTAMP_TOLERANCE_SECONDS,
                       now: Optional[float] = None) -> bool:
    """Reject webhooks older than the tolerance or dated in the future"""
    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        return False

    age = int(now if now is not None else time.time()) - sent_at
    return 0 <= age <= tolerance_seconds


def handle_event(payload: Dict[str, Any]) -> str:
    """Log a delivery event; returns its type"""
    event_type = payload.get("type", "")
    data = payload.get("data") or {}
    email_id = data.get("email_id")
    recipients = ", ".join(data.get("to") or [])

    if event_type == "email.sent":
        logger.info(f"Email sent: {email_id} to {recipients}")
    elif event_type == "email.delivered":
        logger.info(f"Email delivered: {email_id} to {recipients}")
    elif event_type == "email.delivery_delayed":
        logger.warning(f"Email delivery delayed: {email_id}")
    elif event_type == "email.bounced":
        logger.error(
            f"Email bounced: {email_id} "
            f"(type={data.get('bounce_type')}, reason={data.get('bounce_reason')})"
        )
    elif event_type == "email.complained":
        logger.error(f"Spam complaint: {email_id} (type={data.get('complaint_type')})")
    elif event_type == "email.opened":
        logger.info(f"Email opened: {email_id} from {data.get('ip_address')}")
    elif event_type == "email.clicked":
        logger.info(f"Link clicked: {email_id} -> {data.get('link')}")
    else:
        logger.warning(f"Unknown Resend event type: {event_type}")

    return event_type
