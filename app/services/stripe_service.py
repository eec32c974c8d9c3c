"""
Stripe Payment Integration

Thin wrapper over the stripe SDK. Amounts are passed in hryvnias and sent
to Stripe in kopiykas.

Author: TM3
Date: 2025-10-17
"""
import logging
from typing import Any, Dict, Optional, Union

import stripe

from app.core.config import settings

logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Stripe is not configured or rejected the request"""


def _configure() -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise StripeServiceError("Stripe secret key is not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def create_payment_intent(
    amount: float,
    order_id: str,
    order_number: str,
    customer_email: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    _configure()

    try:
        intent = stripe.PaymentIntent.create(
            amount=int(round(float(amount) * 100)),
            currency="uah",
            automatic_payment_methods={"enabled": True},
            metadata={"order_id": order_id, "order_number": order_number},
            receipt_email=customer_email,
            description=description or f"Оплата замовлення {order_number} - Dekop Furniture",
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe payment intent creation error: {e}")
        raise StripeServiceError(str(e)) from e

    logger.info(f"Stripe payment intent {intent.id} created for order {order_number}")
    return {
        "success": True,
        "clientSecret": intent.client_secret,
        "paymentIntentId": intent.id,
        "amount": intent.amount,
        "currency": intent.currency,
    }


def retrieve_payment_intent(payment_intent_id: str):
    _configure()
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe get payment intent error: {e}")
        raise StripeServiceError(str(e)) from e


def confirm_payment_intent(payment_intent_id: str):
    _configure()
    try:
        return stripe.PaymentIntent.confirm(payment_intent_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe confirm payment intent error: {e}")
        raise StripeServiceError(str(e)) from e


def cancel_payment_intent(payment_intent_id: str):
    _configure()
    try:
        return stripe.PaymentIntent.cancel(payment_intent_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe cancel payment intent error: {e}")
        raise StripeServiceError(str(e)) from e


def create_refund(payment_intent_id: str, amount: Optional[float] = None) -> Dict[str, Any]:
    """Full refund, or a partial one when amount (UAH) is given"""
    _configure()
    params: Dict[str, Any] = {"payment_intent": payment_intent_id}
    if amount:
        params["amount"] = int(round(float(amount) * 100))

    try:
        refund = stripe.Refund.create(**params)
    except stripe.StripeError as e:
        logger.error(f"Stripe refund creation error: {e}")
        raise StripeServiceError(str(e)) from e

    return {"success": True, "refundId": refund.id, "amount": refund.amount, "status": refund.status}


def construct_webhook_event(payload: Union[bytes, str], signature: str):
    """
    Verify the Stripe-Signature header and return the event.

    Raises:
        StripeServiceError: webhook secret missing, bad payload or bad signature
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise StripeServiceError("Stripe webhook secret is not configured")

    try:
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error(f"Stripe webhook verification error: {e}")
        raise StripeServiceError("Webhook signature verification failed") from e
