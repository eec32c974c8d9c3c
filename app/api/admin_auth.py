"""
Admin Authentication API Endpoints
Login, logout, password reset requests, current admin and CSRF token refresh

Author: TM3
Date: 2025-10-17
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.admin_auth import (
    authenticate_admin,
    clear_session_cookie,
    get_current_admin,
    get_request_ip,
    get_session_token,
    get_user_agent,
    hash_token,
    log_audit,
    request_password_reset,
    revoke_admin_session,
    set_session_cookie,
    validate_admin_session,
)
from app.core.config import settings
from app.core.csrf import CSRF_COOKIE_NAME, clear_csrf_cookie, issue_csrf_token, validate_csrf_token
from app.core.errors import format_validation_errors
from app.domain.admin import AdminUser, LoginRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login")
async def login(request: Request, response: Response, body: dict):
    """
    Authenticate with email and password

    Sets the admin_session cookie plus a CSRF cookie bound to the new
    session; the CSRF token is also returned for immediate client use.
    """
    try:
        credentials = LoginRequest.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Validation failed",
                "errors": format_validation_errors(e.errors()),
            }
        )

    try:
        result = authenticate_admin(
            credentials.email,
            credentials.password,
            get_request_ip(request),
            get_user_agent(request),
        )
    except Exception as e:
        logger.error(f"Login error: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "An error occurred during login"}
        )

    if not result.success:
        return JSONResponse(status_code=401, content={"success": False, "error": result.error})

    set_session_cookie(response, result.token)
    csrf_token = issue_csrf_token(response, result.token)

    logger.info(f"Admin {credentials.email} logged in")
    return {"success": True, "user": result.user, "csrfToken": csrf_token}


@router.post("/logout")
async def logout(request: Request, response: Response):
    token = get_session_token(request)

    try:
        if token:
            admin = validate_admin_session(token)
            revoke_admin_session(token)
            log_audit(admin.id if admin else None, admin.email if admin else None, "logout", "auth", None, None,
                      get_request_ip(request), get_user_agent(request))
    except Exception as e:
        logger.error(f"Logout error: {e}")
        raise HTTPException(
            status_code=500,
            detail={"success": False, "error": "An error occurred during logout"}
        )

    clear_session_cookie(response)
    clear_csrf_cookie(response)
    return {"success": True}


@router.post("/reset-password")
async def reset_password(request: Request, body: dict):
    """
    Start a password reset for an admin email

    Always answers {"success": true} for a well-formed request so the
    endpoint cannot be used to discover which emails have accounts.
    """
    email = body.get("email")
    if not email or not isinstance(email, str):
        return JSONResponse(status_code=400, content={"success": False, "error": "Email обов'язковий"})

    try:
        token = request_password_reset(email, get_request_ip(request), get_user_agent(request))
    except Exception as e:
        logger.error(f"Password reset error: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Виникла помилка при скиданні пароля"}
        )

    if token and settings.is_development:
        logger.info(f"Password reset link: {settings.BASE_URL}/{settings.ADMIN_PATH}/reset-password?token={token}")

    return {"success": True}


@router.get("/me")
async def get_me(admin: AdminUser = Depends(get_current_admin)):
    return {
        "success": True,
        "user": {
            **admin.public_dict(),
            "must_change_password": admin.must_change_password,
            "roles": admin.roles,
            "permissions": admin.permissions,
        }
    }


@router.get("/csrf")
async def refresh_csrf_token(
    request: Request,
    response: Response,
    admin: AdminUser = Depends(get_current_admin)
):
    """Return the current CSRF token, issuing a new one when it is missing or stale"""
    session_token = get_session_token(request)
    existing = request.cookies.get(CSRF_COOKIE_NAME)
    if existing and validate_csrf_token(existing, hash_token(session_token)):
        return {"csrfToken": existing}

    return {"csrfToken": issue_csrf_token(response, session_token)}
