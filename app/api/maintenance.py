"""
Maintenance API Endpoints
Periodic cleanup of expired rows, called by an external cron

Author: TM3
Date: 2025-10-17
"""
import hmac
import logging

from fastapi import APIRouter, HTTPException, Request

from app.core.admin_auth import admin_repository
from app.core.config import settings
from app.core.session_security import cleanup_expired_csrf_tokens, cleanup_expired_sessions
from app.core.webhook_security import cleanup_expired_webhook_events
from app.repositories.cart_repository import CartRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def is_authorized_cron(request: Request) -> bool:
    """Authorization: Bearer <CRON_SECRET>; always False when no secret is set"""
    if not settings.CRON_SECRET:
        return False
    expected = f"Bearer {settings.CRON_SECRET}"
    provided = request.headers.get("authorization") or ""
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


@router.get("/cleanup")
async def cleanup(request: Request):
    """
    Delete expired sessions, CSRF tokens, carts, webhook events and admin sessions

    Returns:
        {"success": true, "cleaned": {<table>: <deleted rows>}}
    """
    if not is_authorized_cron(request):
        logger.warning("Rejected cleanup request with invalid cron secret")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        cleaned = {
            "sessions": cleanup_expired_sessions(),
            "csrf": cleanup_expired_csrf_tokens(),
            "carts": CartRepository().delete_expired(),
            "webhook_events": cleanup_expired_webhook_events(),
            "admin_sessions": admin_repository.delete_expired_sessions(),
        }

    except Exception as e:
        logger.error(f"Cleanup failed: {e}")
        raise HTTPException(status_code=500, detail="Cleanup failed")

    logger.info(f"Cleanup finished: {cleaned}")
    return {"success": True, "cleaned": cleaned}
