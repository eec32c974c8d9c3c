"""
Unit tests for cookie encryption, signing, sessions and CSRF helpers

Author: TM3
Date: 2025-10-17
"""
import base64
import json
from unittest.mock import MagicMock, patch

import pytest

from app.core import csrf, session_security
from app.core.admin_auth import hash_token


class TestCookieEncryption:

    def test_encrypt_then_decrypt(self):
        sealed = session_security.encrypt_cookie_value("cart:0b6c5a8e")

        assert session_security.decrypt_cookie_value(sealed) == "cart:0b6c5a8e"
        assert set(json.loads(base64.b64decode(sealed))) == {"iv", "value", "authTag"}

    def test_tampered_ciphertext_returns_none(self):
        combined = json.loads(base64.b64decode(session_security.encrypt_cookie_value("secret")))
        ciphertext = bytearray(base64.b64decode(combined["value"]))
        ciphertext[0] ^= 0xFF
        combined["value"] = base64.b64encode(bytes(ciphertext)).decode("ascii")
        tampered = base64.b64encode(json.dumps(combined).encode()).decode("ascii")

        assert session_security.decrypt_cookie_value(tampered) is None

    def test_garbage_returns_none(self):
        assert session_security.decrypt_cookie_value("not base64 json") is None

    def test_signed_cookie(self):
        signed = session_security.create_signed_cookie("admin")
        forged = base64.b64encode(json.dumps({"value": "root", "signature": "00"}).encode()).decode()

        assert session_security.verify_signed_cookie(signed) == "admin"
        assert session_security.verify_signed_cookie(forged) is None


class TestSessions:

    def test_token_format(self):
        token = session_security.generate_session_token()

        assert session_security.is_valid_token_format(token)
        assert not session_security.is_valid_token_format(token[:-1])
        assert not session_security.is_valid_token_format("z" * 64)
        assert not session_security.is_valid_token_format(None)

    def test_create_session_stores_hash_only(self):
        repo = MagicMock()

        with patch.object(session_security, "session_repository", repo):
            created = session_security.create_session(user_id="u1", metadata={"ip": "1.2.3.4"})

        session_id, token_hash, user_id, metadata, expiry = repo.create.call_args[0]
        assert session_id == created["session_id"]
        assert token_hash == session_security.hash_token(created["session_token"])
        assert token_hash != created["session_token"]
        assert (user_id, metadata, expiry) == ("u1", {"ip": "1.2.3.4"}, session_security.SESSION_TOKEN_EXPIRY)

    def test_store_and_admin_sessions_share_token_hashing(self):
        """A token hashed for the session store matches the admin session hash"""
        token = session_security.generate_session_token()

        assert session_security.hash_token is hash_token
        assert session_security.hash_token(token) == hash_token(token)

    def test_validate_session_rejects_malformed_token_without_lookup(self):
        repo = MagicMock()

        with patch.object(session_security, "session_repository", repo):
            assert session_security.validate_session("short") is None

        repo.find_active_by_token_hash.assert_not_called()

    def test_csrf_token_consumption_errors_are_invalid(self):
        repo = MagicMock()
        repo.consume_csrf_token.side_effect = RuntimeError("db down")

        with patch.object(session_security, "session_repository", repo):
            assert session_security.validate_and_consume_csrf_token("t", "s") is False


class TestAdminCsrfTokens:
    """Stateless HMAC tokens bound to the admin session"""

    def test_valid_token(self):
        session_hash = hash_token("session-token")
        token = csrf.generate_csrf_token(session_hash)

        assert csrf.validate_csrf_token(token, session_hash) is True

    def test_token_bound_to_session(self):
        token = csrf.generate_csrf_token(hash_token("session-a"))

        assert csrf.validate_csrf_token(token, hash_token("session-b")) is False

    def test_expired_token(self):
        session_hash = hash_token("session-token")
        token = csrf.generate_csrf_token(session_hash, now_ms=1_000)

        assert csrf.validate_csrf_token(token, session_hash) is False

    @pytest.mark.parametrize("token", [None, "", "%%%", base64.b64encode(b"no-colon").decode(),
                                       base64.b64encode(b"abc:deadbeef").decode()])
    def test_malformed_tokens(self, token):
        assert csrf.validate_csrf_token(token, hash_token("s")) is False
