"""
Session security helpers

- AES-256-GCM encrypted cookie values
- HMAC-signed cookie values
- Database-backed sessions and single-use CSRF tokens
"""
import base64
import hashlib
import hmac
import json
import logging
import re
import secrets
import uuid
from functools import lru_cache
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from app.core.admin_auth import generate_session_token, hash_token
from app.core.config import settings
from app.repositories.session_repository import SessionRepository

logger = logging.getLogger(__name__)

CSRF_TOKEN_LENGTH = 32
CSRF_TOKEN_EXPIRY = 3600  # 1 hour in seconds
SESSION_TOKEN_EXPIRY = 86400  # 24 hours in seconds

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16

session_repository = SessionRepository()


def _secret_key() -> str:
    secret = settings.COOKIE_ENCRYPTION_SECRET or settings.SESSION_SECRET
    if not secret:
        raise ValueError("COOKIE_ENCRYPTION_SECRET or SESSION_SECRET must be set")
    return secret


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=b"salt", length=32, n=2 ** 14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def _b64json_encode(data: Dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def _b64json_decode(value: str) -> Dict[str, Any]:
    return json.loads(base64.b64decode(value).decode("utf-8"))


# ============================================================================
# Cookie encryption
# ============================================================================

def encrypt_cookie_value(value: str) -> str:
    """Encrypt a cookie value; output is base64 JSON {iv, value, authTag}"""
    iv = secrets.token_bytes(IV_LENGTH)
    sealed = AESGCM(_derive_key(_secret_key())).encrypt(iv, value.encode("utf-8"), None)
    ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]

    return _b64json_encode({
        "iv": base64.b64encode(iv).decode("ascii"),
        "value": base64.b64encode(ciphertext).decode("ascii"),
        "authTag": base64.b64encode(auth_tag).decode("ascii"),
    })


def decrypt_cookie_value(encrypted_value: str) -> Optional[str]:
    """Return the plaintext, or None if the value is malformed or tampered with"""
    try:
        combined = _b64json_decode(encrypted_value)
        iv = base64.b64decode(combined["iv"])
        ciphertext = base64.b64decode(combined["value"])
        auth_tag = base64.b64decode(combined["authTag"])

        plaintext = AESGCM(_derive_key(_secret_key())).decrypt(iv, ciphertext + auth_tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Error decrypting cookie value: {type(e).__name__}")
        return None


# ============================================================================
# Cookie signing
# ============================================================================

def sign_cookie_value(value: str) -> str:
    return hmac.new(_secret_key().encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_cookie_signature(value: str, signature: str) -> bool:
    if not isinstance(signature, str):
        return False
    return hmac.compare_digest(signature, sign_cookie_value(value))


def create_signed_cookie(value: str) -> str:
    return _b64json_encode({"value": value, "signature": sign_cookie_value(value)})


def verify_signed_cookie(signed_value: str) -> Optional[str]:
    try:
        combined = _b64json_decode(signed_value)
        value, signature = combined["value"], combined["signature"]
    except (ValueError, KeyError, TypeError):
        logger.warning("Malformed signed cookie")
        return None

    if not verify_cookie_signature(value, signature):
        logger.warning("[SECURITY] Cookie signature verification failed")
        return None
    return value


# ============================================================================
# Database-backed CSRF tokens (single use)
# ============================================================================

def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_LENGTH)


def store_csrf_token(token: str, session_id: str, expiry_seconds: int = CSRF_TOKEN_EXPIRY) -> None:
    session_repository.store_csrf_token(token, session_id, expiry_seconds)


def validate_and_consume_csrf_token(token: str, session_id: str) -> bool:
    try:
        valid = session_repository.consume_csrf_token(token, session_id)
    except Exception as e:
        logger.error(f"Error validating CSRF token: {e}")
        return False

    if not valid:
        logger.warning("[SECURITY] CSRF token validation failed: token not found, expired, or already used")
    return valid


def cleanup_expired_csrf_tokens() -> int:
    deleted = session_repository.delete_expired_csrf_tokens()
    logger.info(f"[CLEANUP] Removed {deleted} expired CSRF tokens")
    return deleted


# ============================================================================
# Sessions
# ============================================================================

def create_session(user_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                   expiry_seconds: int = SESSION_TOKEN_EXPIRY) -> Dict[str, str]:
    session_id = str(uuid.uuid4())
    session_token = generate_session_token()

    session_repository.create(session_id, hash_token(session_token), user_id, metadata, expiry_seconds)

    logger.info(f"[SESSION] Created session {session_id}")
    return {"session_id": session_id, "session_token": session_token}


def validate_session(session_token: str) -> Optional[Dict[str, Any]]:
    if not is_valid_token_format(session_token):
        return None

    try:
        session = session_repository.find_active_by_token_hash(hash_token(session_token))
    except Exception as e:
        logger.error(f"Error validating session token: {e}")
        return None

    if not session:
        logger.warning("[SECURITY] Session token validation failed: token not found, expired, or revoked")
        return None

    return {
        "session_id": str(session["id"]),
        "user_id": session.get("user_id"),
        "metadata": session.get("metadata"),
    }


def revoke_session(session_id: str) -> None:
    session_repository.revoke(session_id)
    logger.info(f"[SESSION] Session {session_id} revoked")


def extend_session(session_id: str, expiry_seconds: int = SESSION_TOKEN_EXPIRY) -> None:
    session_repository.extend(session_id, expiry_seconds)


def cleanup_expired_sessions() -> int:
    deleted = session_repository.delete_expired()
    logger.info(f"[CLEANUP] Removed {deleted} expired sessions")
    return deleted


# ============================================================================
# Utilities
# ============================================================================

def generate_secure_random(length: int = 32) -> str:
    return secrets.token_hex(length)


_HEX_RE = re.compile(r"^[a-fA-F0-9]+$")


def is_valid_token_format(token: Optional[str], expected_length: int = 64) -> bool:
    return bool(token) and len(token) == expected_length and bool(_HEX_RE.match(token))


def timing_safe_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
