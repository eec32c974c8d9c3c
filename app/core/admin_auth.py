"""
Authentication for the Dekop back office

Opaque session tokens (sha256-hashed at rest) carried in the admin_session
cookie, bcrypt passwords, account lockout and an in-process LRU cache of
validated sessions.
"""
import hashlib
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, Response, status
from passlib.context import CryptContext

from app.core.config import settings
from app.domain.admin import AdminUser
from app.repositories.admin_repository import AdminRepository
from app.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
SESSION_DURATION_HOURS = 12
MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION_MINUTES = 30
PASSWORD_RESET_EXPIRY_HOURS = 1
SESSION_COOKIE_NAME = "admin_session"
SESSION_CACHE_TTL_SECONDS = 5 * 60
SESSION_CACHE_MAX_SIZE = 1000

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

admin_repository = AdminRepository()
audit_repository = AuditRepository()


# ============================================================================
# Session cache
# ============================================================================

@dataclass
class _CacheEntry:
    user: AdminUser
    session_id: str
    cached_at: float
    last_accessed: float = field(default=0.0)


class SessionCache:
    """
    LRU cache of validated sessions keyed by token hash.

    Entries live for ttl_seconds; when full, the least recently accessed
    entry is evicted.
    """

    def __init__(self, ttl_seconds: int = SESSION_CACHE_TTL_SECONDS, max_size: int = SESSION_CACHE_MAX_SIZE):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, token_hash: str) -> Optional[AdminUser]:
        now = time.time()
        with self._lock:
            entry = self._entries.get(token_hash)
            if entry is None:
                return None
            if now - entry.cached_at > self.ttl_seconds:
                del self._entries[token_hash]
                return None
            entry.last_accessed = now
            return entry.user

    def put(self, token_hash: str, user: AdminUser, session_id: str) -> None:
        now = time.time()
        with self._lock:
            if token_hash not in self._entries and len(self._entries) >= self.max_size:
                self._evict_lru()
            self._entries[token_hash] = _CacheEntry(user, session_id, now, now)

    def _evict_lru(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_accessed, default=None)
        if oldest_key is not None:
            logger.debug(f"[SessionCache] Evicting LRU entry (max size: {self.max_size})")
            del self._entries[oldest_key]

    def invalidate(self, token_hash: str) -> None:
        with self._lock:
            self._entries.pop(token_hash, None)

    def invalidate_user(self, user_id: str) -> None:
        with self._lock:
            for key in [k for k, e in self._entries.items() if e.user.id == user_id]:
                del self._entries[key]

    def invalidate_session_id(self, session_id: str) -> None:
        with self._lock:
            for key in [k for k, e in self._entries.items() if e.session_id == session_id]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


session_cache = SessionCache()


# ============================================================================
# Passwords and tokens
# ============================================================================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        logger.warning("Stored admin password hash is malformed")
        return False


def generate_session_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ============================================================================
# Sessions
# ============================================================================

def create_admin_session(user_id: str, ip_address: Optional[str], user_agent: Optional[str]) -> str:
    """Open a session and return the raw token (only its hash is stored)"""
    token = generate_session_token()
    admin_repository.create_session(user_id, hash_token(token), ip_address, user_agent, SESSION_DURATION_HOURS)
    return token


def validate_admin_session(token: Optional[str]) -> Optional[AdminUser]:
    if not token:
        return None

    token_hash = hash_token(token)
    cached = session_cache.get(token_hash)
    if cached:
        return cached

    row = admin_repository.find_session_user(token_hash)
    if not row:
        return None

    try:
        admin_repository.touch_session(str(row['session_id']))
    except Exception as e:
        logger.warning(f"Failed to update last_activity_at: {e}")

    user = AdminUser(
        id=str(row['id']),
        email=row['email'],
        first_name=row.get('first_name'),
        last_name=row.get('last_name'),
        is_active=row['is_active'],
        is_locked=row['is_locked'],
        must_change_password=row.get('must_change_password') or False,
        last_login_at=row.get('last_login_at'),
        created_at=row.get('created_at'),
        permissions=list(row.get('permissions') or []),
        roles=list(row.get('roles') or []),
    )
    session_cache.put(token_hash, user, str(row['session_id']))
    return user


def revoke_admin_session(token: str) -> None:
    token_hash = hash_token(token)
    session_cache.invalidate(token_hash)
    admin_repository.revoke_session_by_token_hash(token_hash, "logout")


def revoke_all_user_sessions(user_id: str, reason: str = "logout_all") -> None:
    session_cache.invalidate_user(user_id)
    admin_repository.revoke_all_user_sessions(user_id, reason)


def revoke_session_by_id(session_id: str, reason: str) -> None:
    session_cache.invalidate_session_id(session_id)
    admin_repository.revoke_session_by_id(session_id, reason)


# ============================================================================
# Login
# ============================================================================

@dataclass
class AuthResult:
    success: bool
    token: Optional[str] = None
    error: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


def is_account_locked(user_id: str) -> bool:
    """True while locked; an expired lock is cleared as a side effect"""
    state = admin_repository.get_lock_state(user_id)
    if not state:
        return True
    if not state['is_locked']:
        return False

    locked_until = state.get('locked_until')
    if locked_until is not None:
        if locked_until.tzinfo is None:
            locked_until = locked_until.replace(tzinfo=timezone.utc)
        if locked_until < datetime.now(timezone.utc):
            admin_repository.reset_failed_attempts(user_id)
            return False
    return True


def log_audit(user_id: Optional[str], user_email: Optional[str], action: str,
              resource: Optional[str] = None, resource_id: Optional[str] = None,
              details: Optional[Dict[str, Any]] = None, ip_address: Optional[str] = None,
              user_agent: Optional[str] = None, success: bool = True,
              error_message: Optional[str] = None) -> None:
    """Write an audit row; failures are logged, never raised to the caller"""
    try:
        audit_repository.log(user_id, user_email, action, resource, resource_id, details,
                             ip_address, user_agent, success, error_message)
    except Exception as e:
        logger.error(f"Failed to write audit log entry '{action}': {e}")


def _fail(email: str, user_id: Optional[str], reason: str, message: str,
          ip_address: Optional[str], user_agent: Optional[str], error: str) -> AuthResult:
    admin_repository.record_login_attempt(email, user_id, False, reason, ip_address, user_agent)
    log_audit(user_id, email, "login_failed", "auth", None, {"reason": reason},
              ip_address, user_agent, False, message)
    return AuthResult(success=False, error=error)


def authenticate_admin(email: str, password: str, ip_address: Optional[str],
                       user_agent: Optional[str]) -> AuthResult:
    email = email.strip().lower()
    user = admin_repository.get_by_email(email)

    if not user:
        return _fail(email, None, "user_not_found", "User not found", ip_address, user_agent,
                     "Invalid email or password")

    user_id = str(user['id'])

    if not user['is_active']:
        return _fail(email, user_id, "account_inactive", "Account inactive", ip_address, user_agent,
                     "Account is inactive")

    if is_account_locked(user_id):
        return _fail(email, user_id, "account_locked", "Account locked", ip_address, user_agent,
                     "Account is locked. Please try again later.")

    if not verify_password(password, user['password_hash']):
        attempts = admin_repository.increment_failed_attempts(user_id, MAX_LOGIN_ATTEMPTS, LOCKOUT_DURATION_MINUTES)
        if attempts >= MAX_LOGIN_ATTEMPTS:
            logger.warning(f"Admin account {email} locked after {attempts} failed attempts")
        return _fail(email, user_id, "invalid_password", "Invalid password", ip_address, user_agent,
                     "Invalid email or password")

    admin_repository.reset_failed_attempts(user_id)
    admin_repository.update_last_login(user_id, ip_address)
    token = create_admin_session(user_id, ip_address, user_agent)
    admin_repository.record_login_attempt(email, user_id, True, None, ip_address, user_agent)
    log_audit(user_id, email, "login_success", "auth", None, None, ip_address, user_agent)

    return AuthResult(
        success=True,
        token=token,
        user={
            "id": user_id,
            "email": user['email'],
            "first_name": user.get('first_name'),
            "last_name": user.get('last_name'),
        }
    )


def request_password_reset(email: str, ip_address: Optional[str],
                           user_agent: Optional[str]) -> Optional[str]:
    """
    Issue a one-hour password reset token for an active admin.

    Returns the raw token, or None when the email is unknown or the
    account is inactive. Callers answer both cases identically.
    """
    email = email.strip().lower()
    user = admin_repository.get_by_email(email)

    if not user or not user['is_active']:
        reason = "user_not_found" if not user else "account_inactive"
        log_audit(str(user['id']) if user else None, email, "password_reset_requested", "auth", None,
                  {"reason": reason}, ip_address, user_agent, False, reason)
        return None

    user_id = str(user['id'])
    token = generate_session_token()
    expires_at = datetime.now(timezone.utc) + timedelta(hours=PASSWORD_RESET_EXPIRY_HOURS)
    admin_repository.create_password_reset_token(user_id, hash_token(token), expires_at, ip_address, user_agent)
    log_audit(user_id, email, "password_reset_requested", "auth", None,
              {"expires_at": expires_at.isoformat()}, ip_address, user_agent)

    return token


# ============================================================================
# Cookies and request helpers
# ============================================================================

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
        max_age=SESSION_DURATION_HOURS * 60 * 60,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE_NAME) or None


def get_request_ip(request: Request) -> Optional[str]:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


# ============================================================================
# FastAPI dependencies
# ============================================================================

async def get_current_admin(request: Request) -> AdminUser:
    """
    Dependency that resolves the admin behind the admin_session cookie.

    Usage:
        @router.get("/orders")
        async def list_orders(admin: AdminUser = Depends(get_current_admin)):
            ...
    """
    user = validate_admin_session(get_session_token(request))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


async def get_current_admin_optional(request: Request) -> Optional[AdminUser]:
    return validate_admin_session(get_session_token(request))


def require_permission(permission: str):
    """
    Dependency factory for permission-based access control.

    Usage:
        @router.delete("/bulk-delete")
        async def bulk_delete(admin: AdminUser = Depends(require_permission("orders.delete"))):
            ...
    """
    async def permission_checker(
        admin: AdminUser = Depends(get_current_admin)
    ) -> AdminUser:
        if not admin.has_permission(permission):
            logger.warning(f"Admin {admin.email} denied: missing permission {permission}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")
        return admin

    return permission_checker
