"""
Monobank Acquiring API Integration

Invoices are created and queried over the merchant REST API with the
X-Token header. Webhooks carry an X-Sign header: a base64 SHA256 signature
of the raw request body made with Monobank's key pair. Monobank publishes
an ECDSA key; RSA keys are accepted as well.

Documentation: https://api.monobank.ua/docs/acquiring.html

Author: TM3
Date: 2025-10-17
"""
import base64
import binascii
import logging
from typing import Any, Dict, Optional, Union

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from app.core.config import settings

logger = logging.getLogger(__name__)

MONOBANK_API_BASE = "https://api.monobank.ua/api/merchant"
UAH_CURRENCY_CODE = 980
INVOICE_VALIDITY_SECONDS = 3600


class MonobankError(Exception):
    """Monobank is not configured or its API call failed"""


def _headers() -> Dict[str, str]:
    if not settings.MONOBANK_TOKEN:
        raise MonobankError("Monobank token is not configured")
    return {"X-Token": settings.MONOBANK_TOKEN, "Content-Type": "application/json"}


async def _request(method: str, path: str, **kwargs) -> Dict[str, Any]:
    url = f"{MONOBANK_API_BASE}{path}"
    headers = _headers()

    async with httpx.AsyncClient() as client:
        try:
            response = await client.request(method, url, headers=headers, timeout=30.0, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Monobank API request failed: {e.response.status_code} - {e.response.text}")
            raise MonobankError(f"Monobank API error: {e.response.status_code} - {e.response.text}") from e
        except httpx.HTTPError as e:
            logger.error(f"Monobank API request error: {e}")
            raise MonobankError(str(e) or "Monobank request failed") from e


async def create_invoice(
    amount: float,
    order_id: str,
    order_number: str,
    redirect_url: Optional[str] = None,
    webhook_url: Optional[str] = None,
    customer_email: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> Dict[str, str]:
    """
    Create a payment invoice.

    Args:
        amount: amount in hryvnias, sent to Monobank in kopiykas

    Returns:
        {"invoiceId": ..., "pageUrl": ...}
    """
    merchant_info: Dict[str, Any] = {
        "reference": order_id,
        "destination": f"Оплата замовлення {order_number}",
        "comment": f"Dekop Furniture - Замовлення {order_number}",
    }
    if customer_email:
        merchant_info["customerEmails"] = [customer_email]

    body: Dict[str, Any] = {
        "amount": int(round(float(amount) * 100)),
        "ccy": UAH_CURRENCY_CODE,
        "merchantPaymInfo": merchant_info,
        "redirectUrl": redirect_url or f"{settings.BASE_URL}/order-success",
        "webHookUrl": webhook_url or f"{settings.BASE_URL}/api/v1/webhooks/monobank",
        "validity": INVOICE_VALIDITY_SECONDS,
    }
    if cancel_url:
        body["cancelUrl"] = cancel_url

    data = await _request("POST", "/invoice/create", json=body)
    logger.info(f"Monobank invoice {data.get('invoiceId')} created for order {order_number}")
    return {"invoiceId": data.get("invoiceId"), "pageUrl": data.get("pageUrl")}


async def get_invoice_status(invoice_id: str) -> Dict[str, Any]:
    data = await _request("GET", "/invoice/status", params={"invoiceId": invoice_id})
    return {
        "status": data.get("status"),
        "amount": data.get("amount"),
        "ccy": data.get("ccy"),
        "createdDate": data.get("createdDate"),
        "modifiedDate": data.get("modifiedDate"),
        "reference": data.get("reference"),
    }


async def cancel_invoice(invoice_id: str) -> Dict[str, Any]:
    return await _request("POST", "/invoice/cancel", json={"invoiceId": invoice_id})


def load_public_key(value: str):
    """Accept a PEM string or the base64-encoded PEM Monobank's pubkey endpoint returns"""
    value = (value or "").strip()
    if not value:
        raise ValueError("Monobank public key is empty")
    if "BEGIN" in value:
        pem = value.encode("utf-8")
    else:
        pem = base64.b64decode(value)
    return serialization.load_pem_public_key(pem)


def verify_webhook_signature(
    body: Union[bytes, str],
    x_sign: str,
    public_key: Optional[str] = None,
) -> bool:
    """
    Verify the X-Sign header against the raw body.

    Returns False (never raises) on a missing key, bad encoding or a
    signature mismatch.
    """
    key_value = settings.MONOBANK_PUBLIC_KEY if public_key is None else public_key
    if not key_value or not x_sign or not body:
        logger.error(
            f"Monobank webhook verification failed: missing parameters "
            f"(key={bool(key_value)}, signature={bool(x_sign)}, body={bool(body)})"
        )
        return False

    payload = body.encode("utf-8") if isinstance(body, str) else body

    try:
        key = load_public_key(key_value)
        signature = base64.b64decode(x_sign)

        if isinstance(key, ec.EllipticCurvePublicKey):
            key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
        elif isinstance(key, rsa.RSAPublicKey):
            key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
        else:
            logger.error(f"Unsupported Monobank public key type: {type(key).__name__}")
            return False

        return True

    except InvalidSignature:
        logger.error("Monobank webhook signature verification failed: invalid signature")
        return False
    except (ValueError, TypeError, binascii.Error) as e:
        logger.error(f"Monobank webhook verification error: {e}")
        return False


def map_status(monobank_status: Optional[str]) -> str:
    """Monobank invoice status -> pending | paid | failed | refunded"""
    if monobank_status == "success":
        return "paid"
    if monobank_status in ("failure", "expired"):
        return "failed"
    if monobank_status == "reversed":
        return "refunded"
    return "pending"
