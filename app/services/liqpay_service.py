"""
LiqPay Payment Integration

Checkout payloads are base64-encoded JSON signed with
base64(sha1(private_key + data + private_key)). The same scheme signs the
server callbacks LiqPay posts to the webhook endpoint.

Documentation: https://www.liqpay.ua/documentation/api/aquiring/checkout/doc

Author: TM3
Date: 2025-10-17
"""
import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

LIQPAY_API_URL = "https://www.liqpay.ua/api/request"
LIQPAY_CHECKOUT_URL = "https://www.liqpay.ua/api/3/checkout"

PAID_STATUSES = ("success", "sandbox")
FAILED_STATUSES = ("failure", "error")
REFUNDED_STATUSES = ("reversed",)


class LiqPayError(Exception):
    """LiqPay is not configured or its API call failed"""


def _private_key() -> str:
    return settings.LIQPAY_PRIVATE_KEY or ""


def generate_signature(data: str, private_key: Optional[str] = None) -> str:
    key = _private_key() if private_key is None else private_key
    digest = hashlib.sha1(f"{key}{data}{key}".encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def encode_data(payload: Dict[str, Any]) -> str:
    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_data(data: str) -> Dict[str, Any]:
    return json.loads(base64.b64decode(data).decode("utf-8"))


def _require_credentials() -> None:
    if not settings.LIQPAY_PUBLIC_KEY or not settings.LIQPAY_PRIVATE_KEY:
        raise LiqPayError("LiqPay credentials are not configured")


def create_payment(
    amount: float,
    order_id: str,
    order_number: str,
    description: Optional[str] = None,
    customer_email: Optional[str] = None,
    result_url: Optional[str] = None,
    server_url: Optional[str] = None,
) -> Dict[str, str]:
    """
    Build signed checkout data for the LiqPay payment page.

    Cancelled payments come back through result_url with a failure status,
    LiqPay has no separate cancel URL.

    Returns:
        {"data": ..., "signature": ..., "checkout_url": ...}
    """
    _require_credentials()

    payload = {
        "public_key": settings.LIQPAY_PUBLIC_KEY,
        "version": "3",
        "action": "pay",
        "amount": amount,
        "currency": "UAH",
        "description": description or f"Оплата замовлення {order_number}",
        "order_id": order_id,
        "result_url": result_url or f"{settings.BASE_URL}/order-success",
        "server_url": server_url or f"{settings.BASE_URL}/api/v1/webhooks/liqpay",
        "language": "uk",
    }
    if customer_email:
        payload["sender_email"] = customer_email

    data = encode_data(payload)
    logger.info(f"LiqPay checkout prepared for order {order_number}")
    return {
        "data": data,
        "signature": generate_signature(data),
        "checkout_url": LIQPAY_CHECKOUT_URL,
    }


def verify_callback(data: str, signature: str) -> bool:
    """Constant-time check of a callback signature"""
    if not data or not signature or not _private_key():
        return False
    expected = generate_signature(data)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def parse_callback(data: str) -> Dict[str, Any]:
    try:
        return decode_data(data)
    except (ValueError, UnicodeDecodeError) as e:
        logger.error(f"LiqPay callback parsing error: {e}")
        raise LiqPayError("Failed to parse LiqPay callback data") from e


def map_status(liqpay_status: Optional[str]) -> str:
    """LiqPay status -> pending | paid | failed | refunded"""
    if liqpay_status in PAID_STATUSES:
        return "paid"
    if liqpay_status in FAILED_STATUSES:
        return "failed"
    if liqpay_status in REFUNDED_STATUSES:
        return "refunded"
    return "pending"


async def get_payment_status(order_id: str) -> Dict[str, Any]:
    """Ask the LiqPay API for the current status of an order's payment"""
    _require_credentials()

    data = encode_data({
        "public_key": settings.LIQPAY_PUBLIC_KEY,
        "version": "3",
        "action": "status",
        "order_id": order_id,
    })

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(
                LIQPAY_API_URL,
                data={"data": data, "signature": generate_signature(data)},
                timeout=30.0,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"LiqPay status check failed: {e.response.status_code} - {e.response.text}")
            raise LiqPayError(f"LiqPay API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"LiqPay status check error: {e}")
            raise LiqPayError("Failed to check payment status") from e


def checkout_form_html(data: str, signature: str) -> str:
    return (
        f'<form method="POST" action="{LIQPAY_CHECKOUT_URL}" accept-charset="utf-8" id="liqpay-form">\n'
        f'  <input type="hidden" name="data" value="{data}" />\n'
        f'  <input type="hidden" name="signature" value="{signature}" />\n'
        f'</form>'
    )
