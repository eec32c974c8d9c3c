"""
Unit tests for webhook IP whitelisting, timestamps and replay protection

Author: TM3
Date: 2025-10-17
"""
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.core import webhook_security
from app.core.config import settings
from app.core.webhook_security import (
    ProcessedWebhookStore,
    is_ip_whitelisted,
    is_webhook_unique,
    validate_webhook_ip,
    validate_webhook_timestamp,
)


def _request(headers):
    request = MagicMock()
    request.headers = headers
    return request


class TestIpWhitelist:

    @pytest.mark.parametrize("ip,expected", [
        ("91.226.25.10", True),
        ("91.226.25.255", True),
        ("91.226.26.1", False),
        ("10.0.0.1", True),
        ("not-an-ip", False),
    ])
    def test_exact_and_cidr_entries(self, ip, expected):
        assert is_ip_whitelisted(ip, ["91.226.25.0/24", "10.0.0.1", "bogus/99"]) is expected

    def test_development_skips_check(self):
        result = validate_webhook_ip(_request({"x-forwarded-for": "1.2.3.4"}), "liqpay")

        assert result.valid is True

    def test_production_rejects_unlisted_ip(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "LIQPAY_WEBHOOK_IPS", "91.226.25.0/24")

        result = validate_webhook_ip(_request({"x-forwarded-for": "1.2.3.4, 91.226.25.10"}), "liqpay")

        assert result.valid is False
        assert result.client_ip == "1.2.3.4"

    def test_production_accepts_listed_ip(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "MONOBANK_WEBHOOK_IPS", "194.44.0.1, 194.44.0.2")

        assert validate_webhook_ip(_request({"x-real-ip": "194.44.0.2"}), "monobank").valid is True

    def test_placeholder_whitelist_is_ignored(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_IPS", "0.0.0.0,UPDATE_ME")

        assert validate_webhook_ip(_request({"x-forwarded-for": "1.2.3.4"}), "stripe").valid is True

    def test_disabled_by_environment_variable(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "DISABLE_WEBHOOK_IP_VALIDATION", True)
        monkeypatch.setattr(settings, "LIQPAY_WEBHOOK_IPS", "91.226.25.0/24")

        assert validate_webhook_ip(_request({"x-forwarded-for": "1.2.3.4"}), "liqpay").valid is True


class TestTimestamps:

    def test_accepts_seconds_milliseconds_and_iso(self):
        now = time.time()

        assert validate_webhook_timestamp(int(now) - 30, 300) is True
        assert validate_webhook_timestamp(int(now * 1000) - 30_000, 300) is True
        assert validate_webhook_timestamp(str(int(now)), 300) is True
        iso = (datetime.now(timezone.utc) - timedelta(seconds=10)).isoformat().replace("+00:00", "Z")
        assert validate_webhook_timestamp(iso, 300) is True

    def test_rejects_old_future_and_garbage(self):
        now = time.time()

        assert validate_webhook_timestamp(int(now) - 301, 300) is False
        assert validate_webhook_timestamp(int(now) + 120, 300) is False
        assert validate_webhook_timestamp("yesterday", 300) is False
        assert validate_webhook_timestamp(None, 300) is False
        assert validate_webhook_timestamp(True, 300) is False


class TestReplayProtection:

    def test_in_memory_store_expires_entries(self):
        store = ProcessedWebhookStore()

        store.mark("a", ttl_seconds=60)
        store.mark("b", ttl_seconds=-1)

        assert store.is_processed("a") is True
        assert store.is_processed("b") is False
        assert store.is_processed("c") is False

    def test_database_backed_dedupe(self):
        repo = MagicMock()
        repo.exists_unexpired.side_effect = [False, True]

        with patch.object(webhook_security, "webhook_event_repository", repo):
            assert is_webhook_unique("liqpay_1_success", "liqpay", payload={"a": 1}) is True
            assert is_webhook_unique("liqpay_1_success", "liqpay") is False

        repo.record.assert_called_once_with("liqpay_1_success", "liqpay", 3600, {"a": 1})

    def test_falls_back_to_memory_without_database(self):
        """DATABASE_URL is blank in tests, so the repository raises"""
        assert is_webhook_unique("monobank_inv_success", "monobank") is True
        assert is_webhook_unique("monobank_inv_success", "monobank") is False
        assert is_webhook_unique("monobank_inv_failure", "monobank") is True

    def test_release_deletes_recorded_id(self):
        repo = MagicMock()

        with patch.object(webhook_security, "webhook_event_repository", repo):
            webhook_security.release_webhook("stripe_evt_1")

        repo.delete.assert_called_once_with("stripe_evt_1")

    def test_release_clears_memory_store_without_database(self):
        assert is_webhook_unique("liqpay_9_success", "liqpay") is True

        webhook_security.release_webhook("liqpay_9_success")

        assert is_webhook_unique("liqpay_9_success", "liqpay") is True
