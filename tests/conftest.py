"""
Pytest fixtures and configuration for Dekop Store Backend tests

This file provides shared fixtures that can be used across all test modules.
No test touches a real database: repositories are exercised with a mocked
psycopg2 connection and API tests patch the repository classes.

Author: TM3
Date: 2025-10-17
"""
import uuid
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.admin_auth import session_cache
from app.core.config import settings
from app.core.rate_limit import rate_limiter
from app.core.webhook_security import clear_processed_webhooks

TEST_SECRET = "test-session-secret-0123456789abcdef"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """
    Deterministic settings for every test

    DATABASE_URL is blanked so an accidental real connection fails fast.
    """
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")
    monkeypatch.setattr(settings, "DATABASE_URL", "")
    monkeypatch.setattr(settings, "SESSION_SECRET", TEST_SECRET)
    monkeypatch.setattr(settings, "CSRF_SECRET", "")
    monkeypatch.setattr(settings, "COOKIE_ENCRYPTION_SECRET", "")
    monkeypatch.setattr(settings, "CRON_SECRET", "cron-secret")
    monkeypatch.setattr(settings, "LIQPAY_PUBLIC_KEY", "sandbox_public")
    monkeypatch.setattr(settings, "LIQPAY_PRIVATE_KEY", "sandbox_private")
    monkeypatch.setattr(settings, "MONOBANK_TOKEN", "mono-token")
    monkeypatch.setattr(settings, "MONOBANK_PUBLIC_KEY", "")
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(settings, "RESEND_WEBHOOK_SECRET", "resend-secret")
    monkeypatch.setattr(settings, "DISABLE_WEBHOOK_IP_VALIDATION", False)
    yield


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Rate limit windows, replay store and session cache are process globals"""
    rate_limiter.reset()
    clear_processed_webhooks()
    session_cache.clear()
    yield
    rate_limiter.reset()
    clear_processed_webhooks()
    session_cache.clear()


@pytest.fixture
def client():
    """
    FastAPI TestClient for the full application (middleware included)
    """
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_db():
    """
    Provides a (connection, cursor) pair of MagicMocks

    Usage:
        with patch('app.repositories.x.get_db_connection_dict', return_value=conn): ...
    """
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value = cursor
    return conn, cursor


@pytest.fixture
def order_id():
    return str(uuid.uuid4())


@pytest.fixture
def sample_product_row():
    """
    Provides a products row as returned by ProductRepository queries
    """
    return {
        "id": 7,
        "name": "Диван Олімп",
        "slug": "dyvan-olimp",
        "description": "Кутовий диван",
        "category": "sofas",
        "price": Decimal("16000.00"),
        "sale_price": None,
        "stock": 4,
        "rating": Decimal("4.50"),
        "is_on_sale": False,
        "is_new": True,
        "is_bestseller": False,
        "created_at": datetime(2025, 3, 1, 12, 0),
        "updated_at": None,
        "images": [
            {"image_url": "/img/olimp-side.jpg", "is_primary": False},
            {"image_url": "/img/olimp.jpg", "is_primary": True},
        ],
        "specs": {"construction": "Кутовий"},
        "colors": [{"color": "Сірий", "image_url": "/img/grey.jpg"}],
    }


@pytest.fixture
def sample_order_row(order_id):
    """
    Provides an orders row joined with its items (ORDER_WITH_ITEMS_QUERY shape)
    """
    return {
        "id": order_id,
        "order_number": "#1234567890",
        "user_name": "Олена",
        "user_surname": "Коваль",
        "user_phone": "+380501234567",
        "user_email": "olena@example.com",
        "delivery_method": "nova_poshta",
        "delivery_address": None,
        "delivery_city": "Київ",
        "delivery_street": "Хрещатик",
        "delivery_building": "1",
        "delivery_apartment": "5",
        "delivery_postal_code": None,
        "store_location": None,
        "subtotal": Decimal("16000.00"),
        "discount_percent": Decimal("0"),
        "discount_amount": Decimal("0"),
        "delivery_cost": Decimal("0"),
        "total_amount": Decimal("16000.00"),
        "prepayment_amount": Decimal("3200.00"),
        "payment_method": "liqpay",
        "payment_status": "pending",
        "order_status": "processing",
        "payment_intent_id": None,
        "payment_deadline": datetime(2025, 3, 3, 12, 0),
        "customer_notes": None,
        "admin_notes": None,
        "created_at": datetime(2025, 3, 1, 12, 0),
        "updated_at": None,
        "shipped_at": None,
        "delivered_at": None,
        "cancelled_at": None,
        "items": [
            {
                "id": 1,
                "order_id": order_id,
                "product_id": 7,
                "product_name": "Диван Олімп",
                "product_slug": "dyvan-olimp",
                "product_article": "12345678-000007",
                "quantity": 1,
                "color": "Сірий",
                "unit_price": 16000,
                "total_price": 16000,
                "product_image_url": "/img/olimp.jpg",
                "product_category": "sofas",
            }
        ],
    }


@pytest.fixture
def sample_order(sample_order_row):
    from app.domain.order import Order

    return Order.from_row(sample_order_row)
