"""
Unit tests for rate limiting, admin authentication and the session cache

Author: TM3
Date: 2025-10-17
"""
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.core import admin_auth
from app.core.rate_limit import RateLimiter, resolve_rate_limit
from app.domain.admin import AdminUser


class TestRateLimiter:
    """Sliding window limiter"""

    def test_blocks_after_max_requests(self):
        limiter = RateLimiter()

        results = [limiter.is_allowed("PAYMENT:1.2.3.4", max_requests=3, window_seconds=60) for _ in range(4)]

        assert [allowed for allowed, _, _ in results] == [True, True, True, False]
        assert [remaining for _, remaining, _ in results[:3]] == [2, 1, 0]
        assert 1 <= results[3][2] <= 61

    def test_identifiers_are_independent(self):
        limiter = RateLimiter()
        limiter.is_allowed("a", max_requests=1)

        assert limiter.is_allowed("a", max_requests=1)[0] is False
        assert limiter.is_allowed("b", max_requests=1)[0] is True

    def test_window_slides(self):
        limiter = RateLimiter()
        limiter._requests["a"].append((time.time() - 61, 1))

        assert limiter.is_allowed("a", max_requests=1, window_seconds=60)[0] is True

    @pytest.mark.parametrize("method,path,expected", [
        ("POST", "/api/v1/payments/liqpay/create", "PAYMENT"),
        ("POST", "/api/v1/orders", "ORDER_CREATE"),
        ("POST", "/api/v1/orders/", "ORDER_CREATE"),
        ("POST", "/api/v1/orders/send-confirmation", None),
        ("POST", "/api/v1/cart/", "CART"),
        ("GET", "/api/v1/cart/", "READ"),
        ("POST", "/api/v1/webhooks/monobank", "WEBHOOK"),
        ("GET", "/api/v1/maintenance/cleanup", "TEST"),
        ("GET", "/api/v1/products/", "READ"),
        ("GET", "/health", None),
        ("OPTIONS", "/api/v1/cart/", None),
    ])
    def test_resolve_rate_limit(self, method, path, expected):
        assert resolve_rate_limit(method, path) == expected


def _admin(user_id="u1", email="admin@dekop.ua"):
    return AdminUser(id=user_id, email=email, permissions=["orders.read"])


class TestSessionCache:

    def test_ttl_expiry(self):
        cache = admin_auth.SessionCache(ttl_seconds=-1)
        cache.put("h1", _admin(), "s1")

        assert cache.get("h1") is None
        assert len(cache) == 0

    def test_evicts_least_recently_used(self):
        cache = admin_auth.SessionCache(max_size=2)
        cache.put("h1", _admin("u1"), "s1")
        cache.put("h2", _admin("u2"), "s2")
        cache._entries["h1"].last_accessed = 0
        cache._entries["h2"].last_accessed = 10

        cache.put("h3", _admin("u3"), "s3")

        assert cache.get("h1") is None
        assert cache.get("h2") is not None
        assert cache.get("h3") is not None

    def test_invalidate_user_and_session(self):
        cache = admin_auth.SessionCache()
        cache.put("h1", _admin("u1"), "s1")
        cache.put("h2", _admin("u1"), "s2")
        cache.put("h3", _admin("u2"), "s3")

        cache.invalidate_session_id("s3")
        cache.invalidate_user("u1")

        assert len(cache) == 0


@pytest.fixture
def admin_repo():
    repo = MagicMock()
    with patch.object(admin_auth, "admin_repository", repo), \
            patch.object(admin_auth, "audit_repository", MagicMock()):
        yield repo


@pytest.fixture(scope="module")
def password_hash():
    return admin_auth.hash_password("correct horse")


class TestAuthenticateAdmin:
    """Login flow with lockout"""

    def _user(self, password_hash, **overrides):
        user = {
            "id": "u1", "email": "admin@dekop.ua", "password_hash": password_hash,
            "first_name": "Іван", "last_name": "Петренко", "is_active": True, "is_locked": False,
        }
        user.update(overrides)
        return user

    def test_success_opens_session(self, admin_repo, password_hash):
        # Arrange
        admin_repo.get_by_email.return_value = self._user(password_hash)
        admin_repo.get_lock_state.return_value = {"is_locked": False, "locked_until": None}

        # Act
        result = admin_auth.authenticate_admin(" Admin@Dekop.ua ", "correct horse", "1.2.3.4", "pytest")

        # Assert
        assert result.success is True
        assert len(result.token) == 64
        assert result.user["email"] == "admin@dekop.ua"
        admin_repo.get_by_email.assert_called_once_with("admin@dekop.ua")
        admin_repo.reset_failed_attempts.assert_called_once_with("u1")
        token_hash = admin_repo.create_session.call_args[0][1]
        assert token_hash == admin_auth.hash_token(result.token)

    def test_unknown_user_gets_generic_error(self, admin_repo):
        admin_repo.get_by_email.return_value = None

        result = admin_auth.authenticate_admin("nobody@dekop.ua", "x", None, None)

        assert result.success is False
        assert result.error == "Invalid email or password"
        admin_repo.record_login_attempt.assert_called_once()

    def test_wrong_password_counts_attempt(self, admin_repo, password_hash):
        admin_repo.get_by_email.return_value = self._user(password_hash)
        admin_repo.get_lock_state.return_value = {"is_locked": False, "locked_until": None}
        admin_repo.increment_failed_attempts.return_value = 5

        result = admin_auth.authenticate_admin("admin@dekop.ua", "wrong", None, None)

        assert result.error == "Invalid email or password"
        admin_repo.increment_failed_attempts.assert_called_once_with(
            "u1", admin_auth.MAX_LOGIN_ATTEMPTS, admin_auth.LOCKOUT_DURATION_MINUTES
        )
        admin_repo.create_session.assert_not_called()

    def test_locked_account_is_rejected(self, admin_repo, password_hash):
        admin_repo.get_by_email.return_value = self._user(password_hash, is_locked=True)
        admin_repo.get_lock_state.return_value = {
            "is_locked": True, "locked_until": datetime.now(timezone.utc) + timedelta(minutes=10)
        }

        result = admin_auth.authenticate_admin("admin@dekop.ua", "correct horse", None, None)

        assert result.error == "Account is locked. Please try again later."

    def test_expired_lock_is_cleared(self, admin_repo):
        admin_repo.get_lock_state.return_value = {
            "is_locked": True, "locked_until": datetime.utcnow() - timedelta(minutes=1)
        }

        assert admin_auth.is_account_locked("u1") is False
        admin_repo.reset_failed_attempts.assert_called_once_with("u1")

    def test_inactive_account(self, admin_repo, password_hash):
        admin_repo.get_by_email.return_value = self._user(password_hash, is_active=False)

        result = admin_auth.authenticate_admin("admin@dekop.ua", "correct horse", None, None)

        assert result.error == "Account is inactive"


class TestValidateAdminSession:

    def test_resolves_user_and_caches(self, admin_repo):
        admin_repo.find_session_user.return_value = {
            "id": "u1", "session_id": "s1", "email": "admin@dekop.ua", "is_active": True,
            "is_locked": False, "permissions": ["orders.read", "orders.update"], "roles": ["manager"],
        }

        first = admin_auth.validate_admin_session("token")
        second = admin_auth.validate_admin_session("token")

        assert first.has_permission("orders.update")
        assert second is first
        admin_repo.find_session_user.assert_called_once()

    def test_missing_token(self, admin_repo):
        assert admin_auth.validate_admin_session(None) is None
        admin_repo.find_session_user.assert_not_called()


class TestPasswordReset:

    def test_issues_token_for_active_admin(self, admin_repo):
        # Arrange
        admin_repo.get_by_email.return_value = {"id": "u1", "email": "admin@dekop.ua", "is_active": True}

        # Act
        token = admin_auth.request_password_reset(" Admin@Dekop.ua ", "1.2.3.4", "pytest")

        # Assert
        assert len(token) == 64
        user_id, token_hash, expires_at, ip, agent = admin_repo.create_password_reset_token.call_args[0]
        assert (user_id, ip, agent) == ("u1", "1.2.3.4", "pytest")
        assert token_hash == admin_auth.hash_token(token)
        remaining = expires_at - datetime.now(timezone.utc)
        assert timedelta(minutes=59) < remaining <= timedelta(hours=admin_auth.PASSWORD_RESET_EXPIRY_HOURS)

    def test_unknown_email_issues_nothing(self, admin_repo):
        admin_repo.get_by_email.return_value = None

        assert admin_auth.request_password_reset("nobody@dekop.ua", None, None) is None
        admin_repo.create_password_reset_token.assert_not_called()

    def test_inactive_account_issues_nothing(self, admin_repo):
        admin_repo.get_by_email.return_value = {"id": "u1", "email": "admin@dekop.ua", "is_active": False}

        assert admin_auth.request_password_reset("admin@dekop.ua", None, None) is None
        admin_repo.create_password_reset_token.assert_not_called()
