"""
API tests for payment and email webhooks

Author: TM3
Date: 2025-10-17
"""
import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.api import webhooks
from app.core.config import settings
from app.services import liqpay_service, stripe_service


@pytest.fixture
def sync():
    """payment_sync replaced so webhooks never touch the orders table"""
    mock_sync = MagicMock()
    mock_sync.apply_status = AsyncMock(return_value=True)
    mock_sync.mark_paid = AsyncMock(return_value=True)
    with patch.object(webhooks, "payment_sync", mock_sync):
        yield mock_sync


def _liqpay_form(order_id, status="success", **extra):
    payload = {
        "order_id": order_id,
        "status": status,
        "transaction_id": 555,
        "create_date": int(time.time() * 1000),
    }
    payload.update(extra)
    data = liqpay_service.encode_data(payload)
    return {"data": data, "signature": liqpay_service.generate_signature(data)}


class TestLiqPayWebhook:

    def test_valid_callback_marks_order(self, client, sync, order_id):
        response = client.post("/api/v1/webhooks/liqpay", data=_liqpay_form(order_id))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert response.headers["X-Robots-Tag"] == "noindex"
        sync.apply_status.assert_awaited_once_with(order_id, "paid", "555")

    def test_invalid_signature(self, client, sync, order_id):
        form = _liqpay_form(order_id)
        form["signature"] = liqpay_service.generate_signature(form["data"], private_key="wrong")

        response = client.post("/api/v1/webhooks/liqpay", data=form)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
        sync.apply_status.assert_not_awaited()

    def test_replay_is_rejected(self, client, sync, order_id):
        form = _liqpay_form(order_id)

        first = client.post("/api/v1/webhooks/liqpay", data=form)
        second = client.post("/api/v1/webhooks/liqpay", data=form)

        assert first.status_code == 200
        assert second.status_code == 409
        assert sync.apply_status.await_count == 1

    def test_retry_after_failed_sync_is_processed(self, client, sync, order_id):
        # Arrange
        sync.apply_status.side_effect = [RuntimeError("db down"), True]
        form = _liqpay_form(order_id)

        # Act
        first = client.post("/api/v1/webhooks/liqpay", data=form)
        retry = client.post("/api/v1/webhooks/liqpay", data=form)

        # Assert
        assert first.status_code == 500
        assert first.json() == {"error": "Webhook handler failed", "details": "db down"}
        assert retry.status_code == 200
        assert sync.apply_status.await_count == 2

    def test_status_change_is_not_a_replay(self, client, sync, order_id):
        client.post("/api/v1/webhooks/liqpay", data=_liqpay_form(order_id, status="wait_accept"))
        response = client.post("/api/v1/webhooks/liqpay", data=_liqpay_form(order_id, status="success"))

        assert response.status_code == 200
        assert sync.apply_status.await_count == 2

    def test_stale_callback(self, client, sync, order_id):
        form = _liqpay_form(order_id, create_date=int((time.time() - 3600) * 1000))

        response = client.post("/api/v1/webhooks/liqpay", data=form)

        assert response.status_code == 400
        assert response.json() == {"error": "Webhook timestamp too old or invalid"}

    def test_missing_fields(self, client, sync):
        response = client.post("/api/v1/webhooks/liqpay", data={"data": "abc"})

        assert response.status_code == 400

    def test_unlisted_ip_blocked_in_production(self, client, sync, order_id, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "LIQPAY_WEBHOOK_IPS", "91.226.25.0/24")

        response = client.post(
            "/api/v1/webhooks/liqpay",
            data=_liqpay_form(order_id),
            headers={"x-forwarded-for": "1.2.3.4"},
        )

        assert response.status_code == 403
        sync.apply_status.assert_not_awaited()


@pytest.fixture(scope="module")
def monobank_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def monobank_public_key(monobank_key, monkeypatch):
    pem = monobank_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    monkeypatch.setattr(settings, "MONOBANK_PUBLIC_KEY", base64.b64encode(pem).decode("ascii"))


def _monobank_request(key, order_id, status="success", modified_date=None):
    body = json.dumps({
        "invoiceId": "inv_1",
        "status": status,
        "reference": order_id,
        "amount": 320000,
        "modifiedDate": (modified_date or datetime.now(timezone.utc)).isoformat(),
    }).encode("utf-8")
    signature = base64.b64encode(key.sign(body, ec.ECDSA(hashes.SHA256()))).decode("ascii")
    return body, signature


class TestMonobankWebhook:

    def test_valid_callback(self, client, sync, order_id, monobank_key, monobank_public_key):
        body, signature = _monobank_request(monobank_key, order_id)

        response = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})

        assert response.status_code == 200
        assert response.json() == {"received": True}
        sync.apply_status.assert_awaited_once_with(order_id, "paid", "inv_1")

    def test_signature_over_different_body(self, client, sync, order_id, monobank_key, monobank_public_key):
        _, signature = _monobank_request(monobank_key, order_id, status="failure")
        body, _ = _monobank_request(monobank_key, order_id, status="success")

        response = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})

        assert response.status_code == 400
        sync.apply_status.assert_not_awaited()

    def test_missing_signature_header(self, client, sync, order_id, monobank_key, monobank_public_key):
        body, _ = _monobank_request(monobank_key, order_id)

        response = client.post("/api/v1/webhooks/monobank", content=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Missing x-sign header"}

    def test_stale_modified_date(self, client, sync, order_id, monobank_key, monobank_public_key):
        body, signature = _monobank_request(
            monobank_key, order_id, modified_date=datetime.now(timezone.utc) - timedelta(hours=1)
        )

        response = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})

        assert response.status_code == 400
        assert response.json() == {"error": "Webhook timestamp too old or invalid"}
        sync.apply_status.assert_not_awaited()

    def test_replay_is_rejected(self, client, sync, order_id, monobank_key, monobank_public_key):
        body, signature = _monobank_request(monobank_key, order_id)

        first = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})
        second = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})

        assert first.status_code == 200
        assert second.status_code == 409
        assert sync.apply_status.await_count == 1

    def test_retry_after_failed_sync_is_processed(self, client, sync, order_id, monobank_key, monobank_public_key):
        # Arrange
        sync.apply_status.side_effect = [RuntimeError("db down"), True]
        body, signature = _monobank_request(monobank_key, order_id)

        # Act
        first = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})
        retry = client.post("/api/v1/webhooks/monobank", content=body, headers={"x-sign": signature})

        # Assert
        assert first.status_code == 500
        assert first.json()["error"] == "Webhook handler failed"
        assert retry.status_code == 200
        assert sync.apply_status.await_count == 2


class TestStripeWebhook:

    def _event(self, event_type, obj, event_id="evt_1"):
        return {"id": event_id, "type": event_type, "data": {"object": obj}}

    def test_payment_succeeded(self, client, sync, order_id):
        event = self._event("payment_intent.succeeded", {"id": "pi_1", "metadata": {"order_id": order_id}})

        with patch.object(stripe_service, "construct_webhook_event", return_value=event):
            response = client.post("/api/v1/webhooks/stripe", content=b"{}",
                                   headers={"stripe-signature": "t=1,v1=abc"})

        assert response.json() == {"received": True}
        sync.mark_paid.assert_awaited_once_with(order_id, "pi_1")

    def test_charge_refunded_looks_up_order(self, client, sync, order_id):
        sync.order_repository.find_by_payment_intent.return_value = {"id": order_id}
        event = self._event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_1"}, event_id="evt_2")

        with patch.object(stripe_service, "construct_webhook_event", return_value=event):
            client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})

        sync.mark_refunded.assert_called_once_with(order_id, "pi_1")

    def test_bad_signature(self, client, sync):
        with patch.object(stripe_service, "construct_webhook_event",
                          side_effect=stripe_service.StripeServiceError("bad")):
            response = client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})

        assert response.status_code == 400

    def test_duplicate_event(self, client, sync, order_id):
        event = self._event("payment_intent.payment_failed", {"id": "pi_1", "metadata": {"order_id": order_id}})

        with patch.object(stripe_service, "construct_webhook_event", return_value=event):
            client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})
            response = client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})

        assert response.status_code == 409
        sync.mark_failed.assert_called_once_with(order_id, "pi_1")

    def test_retry_after_failed_sync_is_processed(self, client, sync, order_id):
        sync.mark_paid.side_effect = [RuntimeError("db down"), True]
        event = self._event("payment_intent.succeeded", {"id": "pi_1", "metadata": {"order_id": order_id}})

        with patch.object(stripe_service, "construct_webhook_event", return_value=event):
            first = client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})
            retry = client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})

        assert first.status_code == 500
        assert retry.status_code == 200
        assert sync.mark_paid.await_count == 2


class TestResendWebhook:

    def _headers(self, body, timestamp=None, secret="resend-secret"):
        timestamp = timestamp or str(int(time.time()))
        digest = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).digest()
        return {
            "svix-id": "msg_1",
            "svix-timestamp": timestamp,
            "svix-signature": "v1," + base64.b64encode(digest).decode("ascii"),
        }

    def test_valid_event(self, client):
        body = json.dumps({"type": "email.delivered", "data": {"email_id": "e1"}})

        response = client.post("/api/v1/webhooks/resend", content=body, headers=self._headers(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_invalid_signature(self, client):
        body = json.dumps({"type": "email.delivered"})

        response = client.post("/api/v1/webhooks/resend", content=body,
                               headers=self._headers(body, secret="other"))

        assert response.status_code == 401

    def test_expired_timestamp(self, client):
        body = json.dumps({"type": "email.delivered"})
        old = str(int(time.time()) - 3600)

        response = client.post("/api/v1/webhooks/resend", content=body, headers=self._headers(body, old))

        assert response.status_code == 401
        assert response.json() == {"error": "Webhook timestamp expired"}

    def test_missing_secret(self, client, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_WEBHOOK_SECRET", "")
        body = "{}"

        response = client.post("/api/v1/webhooks/resend", content=body, headers=self._headers(body))

        assert response.status_code == 500
