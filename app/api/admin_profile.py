"""
Admin Profile API Endpoints
Password change and active session management for the signed-in admin

Author: TM3
Date: 2025-10-17
"""
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.admin_auth import (
    admin_repository,
    create_admin_session,
    get_current_admin,
    get_request_ip,
    get_session_token,
    get_user_agent,
    hash_password,
    hash_token,
    log_audit,
    revoke_all_user_sessions,
    revoke_session_by_id,
    set_session_cookie,
    verify_password,
)
from app.core.csrf import issue_csrf_token
from app.core.errors import format_validation_errors
from app.domain.admin import AdminUser, ChangePasswordRequest
from app.domain.order import is_valid_uuid

logger = logging.getLogger(__name__)

router = APIRouter()


@router.put("/password")
async def change_password(
    request: Request,
    response: Response,
    body: dict = Body(...),
    admin: AdminUser = Depends(get_current_admin)
):
    """
    Change the admin's password

    All sessions are revoked, then a fresh session and CSRF token are
    issued for this browser.
    """
    try:
        payload = ChangePasswordRequest.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "errors": format_validation_errors(e.errors())}
        )

    try:
        password_hash = admin_repository.get_password_hash(admin.id)
        if not password_hash:
            raise HTTPException(status_code=404, detail="User not found")

        if not verify_password(payload.current_password, password_hash):
            raise HTTPException(status_code=400, detail="Невірний поточний пароль")

        admin_repository.update_password(admin.id, hash_password(payload.new_password))
        revoke_all_user_sessions(admin.id, reason="password_changed")

        ip_address = get_request_ip(request)
        user_agent = get_user_agent(request)
        token = create_admin_session(admin.id, ip_address, user_agent)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Change password error: {e}")
        raise HTTPException(status_code=500, detail="Failed to change password")

    set_session_cookie(response, token)
    issue_csrf_token(response, token)
    log_audit(admin.id, admin.email, "password_changed", "admin_users", admin.id, None,
              ip_address, user_agent)

    return {"success": True, "message": "Пароль змінено успішно"}


@router.get("/sessions")
async def list_sessions(request: Request, admin: AdminUser = Depends(get_current_admin)):
    current_hash = hash_token(get_session_token(request))

    try:
        rows = admin_repository.list_active_sessions(admin.id)

    except Exception as e:
        logger.error(f"Get sessions error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch sessions")

    sessions = [
        {
            "id": str(row["id"]),
            "ip_address": row.get("ip_address"),
            "user_agent": row.get("user_agent"),
            "created_at": row.get("created_at"),
            "last_activity_at": row.get("last_activity_at"),
            "is_current": row.get("token_hash") == current_hash,
        }
        for row in rows
    ]
    return {"success": True, "sessions": sessions}


@router.delete("/sessions/{session_id}")
async def end_session(
    session_id: str,
    request: Request,
    admin: AdminUser = Depends(get_current_admin)
):
    """Revoke another of the admin's sessions; the current one must use logout"""
    if not is_valid_uuid(session_id):
        raise HTTPException(status_code=400, detail="Invalid session ID")

    try:
        session = admin_repository.find_user_session(admin.id, session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Сесію не знайдено")

        if session["token_hash"] == hash_token(get_session_token(request)):
            raise HTTPException(
                status_code=400,
                detail='Неможливо завершити поточну сесію. Використайте кнопку "Вийти".'
            )

        revoke_session_by_id(session_id, "user_terminated")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"End session error: {e}")
        raise HTTPException(status_code=500, detail="Failed to end session")

    log_audit(admin.id, admin.email, "session_terminated", "admin_sessions", session_id, None,
              get_request_ip(request), get_user_agent(request))

    return {"success": True, "message": "Сесію завершено"}
