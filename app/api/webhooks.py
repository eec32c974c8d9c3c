"""
Webhooks API Endpoints
Receivers for LiqPay, Monobank, Stripe and Resend callbacks

Payment webhooks run the same gauntlet before touching an order:
source IP, signature, order reference, timestamp freshness and replay
detection. Order transitions go through payment_sync so the status check
endpoint and the webhooks share one state machine. A replay id recorded
for a delivery whose handling then fails is released again, so the
provider's retry is not answered with 409.

Author: TM3
Date: 2025-10-17
"""
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.core.webhook_security import (
    is_webhook_unique,
    release_webhook,
    validate_webhook_ip,
    validate_webhook_timestamp,
    webhook_response_headers,
)
from app.services import liqpay_service, monobank_service, resend_webhook_service, stripe_service
from app.services.payment_sync_service import payment_sync

logger = logging.getLogger(__name__)

router = APIRouter()

WEBHOOK_MAX_AGE_SECONDS = 600
WEBHOOK_DEDUPE_TTL_SECONDS = 3600


def webhook_response(content: Dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=webhook_response_headers())


def webhook_error(message: str, status_code: int) -> JSONResponse:
    return webhook_response({"error": message}, status_code)


def handler_failed(provider: str, error: Exception) -> JSONResponse:
    logger.exception(f"{provider} webhook error: {error}")
    return webhook_response({"error": "Webhook handler failed", "details": str(error)}, 500)


# ============================================================================
# LiqPay
# ============================================================================

@router.post("/liqpay")
async def liqpay_webhook(request: Request):
    """
    LiqPay server callback (form-encoded `data` + `signature`)

    Returns:
        {"status": "ok"} once the order is synced
    """
    try:
        ip_check = validate_webhook_ip(request, "liqpay")
        if not ip_check.valid:
            logger.warning(f"Blocked LiqPay webhook from {ip_check.client_ip}: {ip_check.reason}")
            return webhook_error("Unauthorized IP", 403)

        form = await request.form()
        data = form.get("data")
        signature = form.get("signature")
        if not data or not signature:
            return webhook_error("Missing data or signature", 400)

        if not liqpay_service.verify_callback(data, signature):
            logger.error("Invalid LiqPay signature")
            return webhook_error("Invalid signature", 400)

        payload = liqpay_service.parse_callback(data)
        order_id = payload.get("order_id")
        if not order_id:
            logger.error("No order_id in LiqPay callback")
            return webhook_error("Missing order_id", 400)

        create_date = payload.get("create_date")
        if create_date and not validate_webhook_timestamp(create_date, WEBHOOK_MAX_AGE_SECONDS):
            return webhook_error("Webhook timestamp too old or invalid", 400)

        liqpay_status = payload.get("status")
        payment_id = payload.get("transaction_id") or payload.get("payment_id")
        webhook_id = f"liqpay_{payment_id or order_id}_{liqpay_status}"
        if not is_webhook_unique(webhook_id, "liqpay", ttl_seconds=WEBHOOK_DEDUPE_TTL_SECONDS, payload=payload):
            return webhook_error("Duplicate webhook - already processed", 409)

        status = liqpay_service.map_status(liqpay_status)
        logger.info(f"LiqPay webhook for order {order_id}: {liqpay_status} -> {status}")
        try:
            await payment_sync.apply_status(order_id, status, str(payment_id) if payment_id else None)
        except Exception:
            release_webhook(webhook_id)
            raise

        return webhook_response({"status": "ok"})

    except Exception as e:
        return handler_failed("LiqPay", e)


# ============================================================================
# Monobank
# ============================================================================

@router.post("/monobank")
async def monobank_webhook(request: Request):
    """Monobank invoice status callback, signed with X-Sign over the raw body"""
    try:
        ip_check = validate_webhook_ip(request, "monobank")
        if not ip_check.valid:
            logger.warning(f"Blocked Monobank webhook from {ip_check.client_ip}: {ip_check.reason}")
            return webhook_error("Unauthorized IP", 403)

        body = await request.body()
        x_sign = request.headers.get("x-sign")
        if not x_sign:
            return webhook_error("Missing x-sign header", 400)

        if not monobank_service.verify_webhook_signature(body, x_sign):
            return webhook_error("Webhook signature verification failed", 400)

        payload = json.loads(body)
        order_id = payload.get("reference")
        if not order_id:
            logger.error("No order reference in Monobank webhook payload")
            return webhook_error("Missing order reference", 400)

        modified_date = payload.get("modifiedDate")
        if modified_date and not validate_webhook_timestamp(modified_date, WEBHOOK_MAX_AGE_SECONDS):
            return webhook_error("Webhook timestamp too old or invalid", 400)

        monobank_status = payload.get("status")
        invoice_id = payload.get("invoiceId")
        webhook_id = f"monobank_{invoice_id or order_id}_{monobank_status}"
        if not is_webhook_unique(webhook_id, "monobank", ttl_seconds=WEBHOOK_DEDUPE_TTL_SECONDS, payload=payload):
            return webhook_error("Duplicate webhook - already processed", 409)

        status = monobank_service.map_status(monobank_status)
        logger.info(f"Monobank webhook for order {order_id}: {monobank_status} -> {status}")
        try:
            await payment_sync.apply_status(order_id, status, invoice_id)
        except Exception:
            release_webhook(webhook_id)
            raise

        return webhook_response({"received": True})

    except Exception as e:
        return handler_failed("Monobank", e)


# ============================================================================
# Stripe
# ============================================================================

async def _handle_stripe_event(event) -> None:
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "charge.refunded":
        payment_intent_id = obj.get("payment_intent")
        order = payment_sync.order_repository.find_by_payment_intent(payment_intent_id) if payment_intent_id else None
        if not order:
            logger.error(f"No order found for refunded payment intent {payment_intent_id}")
            return
        payment_sync.mark_refunded(str(order["id"]), payment_intent_id)
        return

    if not event_type.startswith("payment_intent."):
        logger.info(f"Unhandled Stripe event type: {event_type}")
        return

    order_id = (obj.get("metadata") or {}).get("order_id")
    if not order_id:
        logger.error(f"No order_id in payment intent metadata ({obj.get('id')})")
        return

    if event_type == "payment_intent.succeeded":
        await payment_sync.mark_paid(order_id, obj.get("id"))
    elif event_type == "payment_intent.payment_failed":
        payment_sync.mark_failed(order_id, obj.get("id"))
    elif event_type == "payment_intent.canceled":
        payment_sync.mark_cancelled(order_id, obj.get("id"))
    else:
        logger.info(f"Unhandled Stripe event type: {event_type}")


@router.post("/stripe")
async def stripe_webhook(request: Request):
    try:
        ip_check = validate_webhook_ip(request, "stripe")
        if not ip_check.valid:
            logger.warning(f"Blocked Stripe webhook from {ip_check.client_ip}: {ip_check.reason}")
            return webhook_error("Unauthorized IP", 403)

        body = await request.body()
        signature = request.headers.get("stripe-signature")
        if not signature:
            return webhook_error("Missing stripe-signature header", 400)

        try:
            event = stripe_service.construct_webhook_event(body, signature)
        except stripe_service.StripeServiceError:
            return webhook_error("Webhook signature verification failed", 400)

        webhook_id = f"stripe_{event['id']}"
        if not is_webhook_unique(webhook_id, "stripe", ttl_seconds=WEBHOOK_DEDUPE_TTL_SECONDS):
            return webhook_error("Duplicate webhook - already processed", 409)

        try:
            await _handle_stripe_event(event)
        except Exception:
            release_webhook(webhook_id)
            raise
        return webhook_response({"received": True})

    except Exception as e:
        return handler_failed("Stripe", e)


# ============================================================================
# Resend
# ============================================================================

@router.post("/resend")
async def resend_webhook(request: Request):
    """Email delivery events from Resend (svix-signed)"""
    try:
        body = (await request.body()).decode("utf-8")
        signature = request.headers.get("svix-signature")
        svix_id = request.headers.get("svix-id")
        svix_timestamp = request.headers.get("svix-timestamp")

        if not signature:
            logger.error("Resend webhook received without signature")
            return webhook_error("Missing signature header", 400)

        if not resend_webhook_service.is_configured():
            logger.error("RESEND_WEBHOOK_SECRET is not configured")
            return webhook_error("Webhook secret not configured", 500)

        if not resend_webhook_service.verify_webhook_signature(body, signature, svix_timestamp):
            logger.error(f"Invalid Resend webhook signature (svix-id {svix_id})")
            return webhook_error("Invalid signature", 401)

        if not resend_webhook_service.validate_timestamp(svix_timestamp):
            logger.error(f"Resend webhook timestamp expired (svix-id {svix_id})")
            return webhook_error("Webhook timestamp expired", 401)

        payload = json.loads(body)
        resend_webhook_service.handle_event(payload)

        return webhook_response({"received": True})

    except Exception as e:
        return handler_failed("Resend", e)
