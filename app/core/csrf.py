"""
CSRF protection for the admin API

Stateless tokens bound to the admin session:
    token = base64("{timestamp_ms}:{hmac_sha256(secret, '{session_hash}:{timestamp_ms}')}")

The token is delivered in the readable csrf_token cookie and must be echoed
in the x-csrf-token header on every state-changing admin request.
"""
import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.admin_auth import SESSION_COOKIE_NAME, hash_token
from app.core.config import settings

logger = logging.getLogger(__name__)

CSRF_TOKEN_EXPIRY_MS = 60 * 60 * 1000  # 1 hour
CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "x-csrf-token"
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def _sign(session_token_hash: str, timestamp: str) -> str:
    data = f"{session_token_hash}:{timestamp}".encode("utf-8")
    return hmac.new(settings.get_csrf_secret().encode("utf-8"), data, hashlib.sha256).hexdigest()


def generate_csrf_token(session_token_hash: str, now_ms: Optional[int] = None) -> str:
    timestamp = str(now_ms if now_ms is not None else int(time.time() * 1000))
    raw = f"{timestamp}:{_sign(session_token_hash, timestamp)}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def validate_csrf_token(token: Optional[str], session_token_hash: str) -> bool:
    if not token:
        return False

    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.warning("[CSRF] Invalid token encoding")
        return False

    timestamp, _, provided_hmac = decoded.partition(":")
    if not timestamp or not provided_hmac:
        logger.warning("[CSRF] Invalid token format")
        return False

    try:
        token_time = int(timestamp)
    except ValueError:
        logger.warning("[CSRF] Invalid token timestamp")
        return False

    if time.time() * 1000 - token_time > CSRF_TOKEN_EXPIRY_MS:
        logger.warning("[CSRF] Token expired")
        return False

    is_valid = hmac.compare_digest(provided_hmac, _sign(session_token_hash, timestamp))
    if not is_valid:
        logger.warning("[CSRF] Token validation failed - HMAC mismatch")
    return is_valid


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,  # read by the admin front end
        secure=settings.is_production,
        samesite="strict",
        path="/",
        max_age=CSRF_TOKEN_EXPIRY_MS // 1000,
    )


def clear_csrf_cookie(response: Response) -> None:
    response.delete_cookie(CSRF_COOKIE_NAME, path="/")


def issue_csrf_token(response: Response, session_token: str) -> str:
    token = generate_csrf_token(hash_token(session_token))
    set_csrf_cookie(response, token)
    return token


def validate_csrf_request(request: Request) -> bool:
    if request.method.upper() in SAFE_METHODS:
        return True

    session_token = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_token:
        logger.warning("[CSRF] No session token found")
        return False

    csrf_token = request.headers.get(CSRF_HEADER_NAME)
    if not csrf_token:
        logger.warning("[CSRF] No CSRF token in header")
        return False

    return validate_csrf_token(csrf_token, hash_token(session_token))


def csrf_failed_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"error": "CSRF validation failed", "code": "CSRF_INVALID"},
    )


class CsrfMiddleware(BaseHTTPMiddleware):
    """
    Enforces CSRF tokens on unsafe admin requests and rotates the token
    after each successful one.
    """

    def __init__(self, app, protected_prefix: str, exempt_paths=()):
        super().__init__(app)
        self.protected_prefix = protected_prefix.rstrip("/")
        self.exempt_paths = set(exempt_paths)

    def _is_protected(self, request: Request) -> bool:
        path = request.url.path.rstrip("/")
        if request.method.upper() in SAFE_METHODS or path in self.exempt_paths:
            return False
        return path == self.protected_prefix or path.startswith(self.protected_prefix + "/")

    async def dispatch(self, request: Request, call_next):
        if not self._is_protected(request):
            return await call_next(request)

        if not validate_csrf_request(request):
            return csrf_failed_response()

        response = await call_next(request)

        # Handlers that already set or cleared the cookie (login, logout,
        # password change) keep their own value
        already_set = any(
            value.startswith(f"{CSRF_COOKIE_NAME}=")
            for value in response.headers.getlist("set-cookie")
        )
        if 200 <= response.status_code < 300 and not already_set:
            issue_csrf_token(response, request.cookies[SESSION_COOKIE_NAME])

        return response
