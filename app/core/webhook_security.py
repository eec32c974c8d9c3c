"""
Webhook security layer

Defences shared by the payment webhook receivers:
- Source IP whitelisting (exact addresses or CIDR ranges)
- Timestamp freshness checks
- Replay protection, backed by the webhook_events table with an
  in-process fallback when the database is unavailable
"""
import ipaddress
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Union

from fastapi import Request

from app.core.config import settings
from app.repositories.webhook_event_repository import WebhookEventRepository

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 5 * 60
MAX_FUTURE_SKEW_SECONDS = 60

NO_INDEX_HEADERS = {
    "X-Robots-Tag": "noindex",
    "Cache-Control": "no-store, no-cache, must-revalidate",
}

# Values that mark an unconfigured whitelist entry
_PLACEHOLDER_MARKERS = ("0.0.0.0", "UPDATE_ME")

webhook_event_repository = WebhookEventRepository()


def webhook_response_headers() -> Dict[str, str]:
    return dict(NO_INDEX_HEADERS)


# ============================================================================
# In-memory replay store
# ============================================================================

class ProcessedWebhookStore:
    """Process-local map of webhook id -> expiry timestamp"""

    def __init__(self, cleanup_interval: int = CLEANUP_INTERVAL_SECONDS):
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        for key in [k for k, expires_at in self._entries.items() if expires_at < now]:
            del self._entries[key]
        self._last_cleanup = now

    def is_processed(self, webhook_id: str) -> bool:
        now = time.time()
        with self._lock:
            self._cleanup(now)
            expires_at = self._entries.get(webhook_id)
            return expires_at is not None and expires_at > now

    def mark(self, webhook_id: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[webhook_id] = time.time() + ttl_seconds

    def discard(self, webhook_id: str) -> None:
        with self._lock:
            self._entries.pop(webhook_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_cleanup = time.time()

    def __len__(self) -> int:
        return len(self._entries)


processed_webhooks = ProcessedWebhookStore()


def is_webhook_processed(webhook_id: str) -> bool:
    return processed_webhooks.is_processed(webhook_id)


def mark_webhook_processed(webhook_id: str, ttl_seconds: int = 3600) -> None:
    processed_webhooks.mark(webhook_id, ttl_seconds)


def clear_processed_webhooks() -> None:
    processed_webhooks.clear()


def _is_unique_in_memory(webhook_id: str, ttl_seconds: int) -> bool:
    if processed_webhooks.is_processed(webhook_id):
        logger.warning(f"Replay attack detected: Webhook {webhook_id} already processed")
        return False
    processed_webhooks.mark(webhook_id, ttl_seconds)
    return True


def is_webhook_unique(webhook_id: str, provider: str, ttl_seconds: int = 3600,
                      payload: Optional[Any] = None) -> bool:
    """
    Record a webhook as processed unless it already was.

    Returns False for a replay. The check-then-insert is not atomic; the
    ON CONFLICT upsert keeps the table consistent if two deliveries race.
    """
    try:
        if webhook_event_repository.exists_unexpired(webhook_id):
            logger.warning(f"Replay attack detected: Webhook {webhook_id} already processed ({provider})")
            return False
        webhook_event_repository.record(webhook_id, provider, ttl_seconds, payload)
        return True
    except Exception as e:
        logger.warning(f"Webhook dedupe database unavailable, using in-memory store: {e}")
        return _is_unique_in_memory(webhook_id, ttl_seconds)


def release_webhook(webhook_id: str) -> None:
    """
    Forget a recorded webhook id so the provider's retry is processed.

    Called when handling fails after is_webhook_unique() already recorded it.
    """
    processed_webhooks.discard(webhook_id)
    try:
        webhook_event_repository.delete(webhook_id)
    except Exception as e:
        logger.warning(f"Could not release webhook {webhook_id} from database: {e}")


def cleanup_expired_webhook_events() -> int:
    return webhook_event_repository.delete_expired()


# ============================================================================
# IP validation
# ============================================================================

@dataclass
class IpValidationResult:
    valid: bool
    client_ip: Optional[str] = None
    reason: Optional[str] = None


def get_client_ip(request: Request) -> Optional[str]:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for and forwarded_for.split(",")[0].strip():
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or request.headers.get("cf-connecting-ip") or None


def is_ip_whitelisted(client_ip: str, whitelist: Iterable[str]) -> bool:
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False

    for entry in whitelist:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring malformed whitelist entry: {entry}")
    return False


def _real_entries(whitelist: Iterable[str]):
    return [
        ip for ip in whitelist
        if ip.strip() and not any(marker in ip for marker in _PLACEHOLDER_MARKERS)
    ]


def validate_webhook_ip(request: Request, provider: str) -> IpValidationResult:
    if settings.is_development:
        return IpValidationResult(True, reason="Development mode - IP check skipped")

    if settings.DISABLE_WEBHOOK_IP_VALIDATION:
        logger.info(f"[SECURITY] IP validation disabled for {provider} webhook (signature verification still active)")
        return IpValidationResult(True, reason="IP validation disabled via environment variable")

    client_ip = get_client_ip(request)
    if not client_ip:
        logger.warning(f"[SECURITY] Cannot determine IP for {provider} webhook, relying on signature verification")
        return IpValidationResult(True, reason="IP cannot be determined - relying on signature verification")

    whitelist = _real_entries(settings.get_webhook_ips(provider))
    if not whitelist:
        logger.warning(f"[SECURITY] No IPs configured for {provider}, skipping IP validation")
        return IpValidationResult(True, client_ip, "No IPs configured - relying on signature verification")

    if not is_ip_whitelisted(client_ip, whitelist):
        logger.warning(f"[SECURITY WARNING] Webhook IP validation failed for {provider}: {client_ip} not in whitelist")
        return IpValidationResult(False, client_ip, "IP address not in whitelist")

    logger.info(f"[SECURITY] IP validation passed for {provider}: {client_ip}")
    return IpValidationResult(True, client_ip)


# ============================================================================
# Timestamp validation
# ============================================================================

def _timestamp_to_epoch_ms(timestamp: Union[int, float, str, datetime, None]) -> Optional[float]:
    if timestamp is None or isinstance(timestamp, bool):
        return None
    if isinstance(timestamp, datetime):
        return timestamp.timestamp() * 1000
    if isinstance(timestamp, str):
        value = timestamp.strip()
        if not value:
            return None
        try:
            timestamp = float(value)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
            return parsed.timestamp() * 1000
    # Seconds below 1e10, milliseconds otherwise
    return timestamp * 1000 if timestamp < 10_000_000_000 else float(timestamp)


def validate_webhook_timestamp(timestamp, max_age_seconds: int = 300) -> bool:
    timestamp_ms = _timestamp_to_epoch_ms(timestamp)
    if timestamp_ms is None:
        logger.warning(f"Webhook timestamp could not be parsed: {timestamp!r}")
        return False

    age_ms = time.time() * 1000 - timestamp_ms
    max_age_ms = max_age_seconds * 1000

    if age_ms > max_age_ms:
        logger.warning(f"Webhook timestamp too old: {age_ms:.0f}ms (max: {max_age_ms}ms)")
        return False

    if age_ms < -MAX_FUTURE_SKEW_SECONDS * 1000:
        logger.warning(f"Webhook timestamp is in the future: {age_ms:.0f}ms")
        return False

    return True
