"""
Payments API Endpoints
Payment session creation for LiqPay, Monobank and Stripe, plus a
client-triggered status check used when a webhook did not arrive

Author: TM3
Date: 2025-10-17
"""
import logging

from fastapi import APIRouter, Body, HTTPException

from app.core.config import settings
from app.repositories.order_repository import OrderRepository
from app.services import liqpay_service, monobank_service, stripe_service
from app.services.payment_sync_service import payment_sync

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_MESSAGES = {
    "paid": "Payment confirmed",
    "failed": "Payment failed",
    "refunded": "Payment refunded",
}


def _require_payment_fields(body: dict, message: str) -> None:
    if not body.get("amount") or not body.get("orderId") or not body.get("orderNumber"):
        raise HTTPException(status_code=400, detail=message)


# ============================================================================
# Payment creation
# ============================================================================

@router.post("/liqpay/create")
async def create_liqpay_payment(body: dict = Body(...)):
    """Signed data/signature pair for the LiqPay checkout form"""
    _require_payment_fields(body, "Відсутні обов'язкові поля")

    try:
        payment = liqpay_service.create_payment(
            amount=body["amount"],
            order_id=body["orderId"],
            order_number=body["orderNumber"],
            description=body.get("description"),
            customer_email=body.get("customerEmail"),
            result_url=body.get("resultUrl"),
            server_url=body.get("serverUrl"),
        )
    except liqpay_service.LiqPayError as e:
        logger.error(f"LiqPay payment creation error: {e}")
        detail = {"error": str(e) or "Помилка при створенні платежу"}
        if settings.is_development:
            detail["details"] = repr(e)
        raise HTTPException(status_code=500, detail=detail)

    return {
        "success": True,
        "data": payment["data"],
        "signature": payment["signature"],
        "checkoutUrl": payment["checkout_url"],
    }


@router.post("/monobank/create")
async def create_monobank_payment(body: dict = Body(...)):
    _require_payment_fields(body, "Missing required fields")

    try:
        invoice = await monobank_service.create_invoice(
            amount=body["amount"],
            order_id=body["orderId"],
            order_number=body["orderNumber"],
            redirect_url=body.get("resultUrl"),
            webhook_url=body.get("serverUrl"),
            customer_email=body.get("customerEmail"),
            cancel_url=body.get("cancelUrl"),
        )
        OrderRepository().set_payment_intent(body["orderId"], invoice["invoiceId"])

    except Exception as e:
        logger.error(f"Monobank payment creation error: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Помилка при створенні платежу Monobank", "details": str(e)}
        )

    return {"success": True, "invoiceId": invoice["invoiceId"], "pageUrl": invoice["pageUrl"]}


@router.post("/stripe/create-intent")
async def create_stripe_payment_intent(body: dict = Body(...)):
    _require_payment_fields(body, "Missing required fields")

    try:
        intent = stripe_service.create_payment_intent(
            amount=body["amount"],
            order_id=body["orderId"],
            order_number=body["orderNumber"],
            customer_email=body.get("customerEmail"),
            description=body.get("description"),
        )
        OrderRepository().set_payment_intent(body["orderId"], intent["paymentIntentId"])

    except Exception as e:
        logger.error(f"Stripe payment intent error: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to create payment intent", "details": str(e)}
        )

    return intent


# ============================================================================
# Status check
# ============================================================================

async def _check_liqpay(order_id: str) -> dict:
    try:
        response = await liqpay_service.get_payment_status(order_id)
    except Exception as e:
        logger.error(f"LiqPay status check error for order {order_id}: {e}")
        return {"success": False, "status": "pending", "error": "Failed to check LiqPay status"}

    if not response or not response.get("status"):
        return {"success": True, "status": "pending", "message": "Could not get status from LiqPay"}

    status = liqpay_service.map_status(response["status"])
    if status != "pending":
        logger.info(f"Status check: updating order {order_id} to {status}")
        payment_id = response.get("transaction_id") or response.get("payment_id")
        await payment_sync.apply_status(order_id, status, str(payment_id) if payment_id else None)

    return {
        "success": True,
        "status": status,
        "liqpayStatus": response["status"],
        "message": STATUS_MESSAGES.get(status, "Payment pending"),
    }


async def _check_monobank(order_id: str, invoice_id: str) -> dict:
    if not invoice_id:
        return {"success": True, "status": "pending", "message": "No invoice ID found for Monobank payment"}

    try:
        response = await monobank_service.get_invoice_status(invoice_id)
    except Exception as e:
        logger.error(f"Monobank status check error for order {order_id}: {e}")
        return {"success": False, "status": "pending", "error": "Failed to check Monobank status"}

    if not response or not response.get("status"):
        return {"success": True, "status": "pending", "message": "Could not get status from Monobank"}

    status = monobank_service.map_status(response["status"])
    if status != "pending":
        logger.info(f"Status check: updating order {order_id} to {status}")
        await payment_sync.apply_status(order_id, status, invoice_id)

    return {
        "success": True,
        "status": status,
        "monobankStatus": response["status"],
        "message": STATUS_MESSAGES.get(status, "Payment pending"),
    }


@router.post("/check-status")
async def check_payment_status(body: dict = Body(...)):
    """
    Query the payment provider directly and sync the order

    Fallback for webhooks that never arrived. The caller proves ownership
    with the order email.
    """
    order_id = body.get("orderId")
    email = body.get("email")
    if not order_id or not email:
        raise HTTPException(status_code=400, detail="Missing orderId or email")

    try:
        order = OrderRepository().find_by_id_and_email(order_id, str(email).strip().lower())
    except Exception as e:
        logger.error(f"Payment status check error: {e}")
        raise HTTPException(status_code=500, detail="Failed to check payment status")

    if not order:
        raise HTTPException(status_code=404, detail="Order not found or email mismatch")

    if order.payment_status == "paid":
        return {"success": True, "status": "paid", "message": "Payment already confirmed"}

    if order.payment_method == "liqpay":
        return await _check_liqpay(order.id)
    if order.payment_method == "monobank":
        return await _check_monobank(order.id, order.payment_intent_id)

    return {
        "success": True,
        "status": order.payment_status,
        "message": "Payment method does not support direct status check",
    }
