"""
Admin Repository - Back-office users, sessions and login attempts

Author: TM3
Date: 2025-10-17
"""
from datetime import datetime
from typing import List, Optional

from app.core.database import get_db_connection_dict


class AdminRepository:
    """
    Repository for admin_users, admin_sessions and admin_login_attempts.

    Roles and permissions are resolved through admin_user_roles,
    admin_role_permissions, admin_permissions and admin_roles.
    """

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> Optional[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, email, password_hash, first_name, last_name, is_active, is_locked
                FROM admin_users
                WHERE email = %s
            """, (email.lower(),))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def get_password_hash(self, user_id: str) -> Optional[str]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT password_hash FROM admin_users WHERE id = %s", (user_id,))
            row = cursor.fetchone()
            return row['password_hash'] if row else None

        finally:
            cursor.close()
            conn.close()

    def update_password(self, user_id: str, password_hash: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_users
                SET password_hash = %s,
                    must_change_password = false,
                    password_changed_at = NOW(),
                    updated_at = NOW()
                WHERE id = %s
            """, (password_hash, user_id))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def get_lock_state(self, user_id: str) -> Optional[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT is_locked, locked_until
                FROM admin_users
                WHERE id = %s
            """, (user_id,))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def reset_failed_attempts(self, user_id: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_users
                SET failed_login_attempts = 0, is_locked = false, locked_until = NULL
                WHERE id = %s
            """, (user_id,))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def increment_failed_attempts(self, user_id: str, max_attempts: int, lockout_minutes: int) -> int:
        """Bump the failure counter and lock the account once it reaches max_attempts"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_users
                SET failed_login_attempts = failed_login_attempts + 1
                WHERE id = %s
                RETURNING failed_login_attempts
            """, (user_id,))
            row = cursor.fetchone()
            attempts = row['failed_login_attempts'] if row else 0

            if attempts >= max_attempts:
                cursor.execute("""
                    UPDATE admin_users
                    SET is_locked = true,
                        locked_until = NOW() + (%s * INTERVAL '1 minute')
                    WHERE id = %s
                """, (lockout_minutes, user_id))

            conn.commit()
            return attempts

        finally:
            cursor.close()
            conn.close()

    def update_last_login(self, user_id: str, ip_address: Optional[str]) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_users
                SET last_login_at = NOW(), last_login_ip = %s
                WHERE id = %s
            """, (ip_address, user_id))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def record_login_attempt(self, email: str, user_id: Optional[str], success: bool,
                             failure_reason: Optional[str], ip_address: Optional[str],
                             user_agent: Optional[str]) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO admin_login_attempts
                    (email, user_id, success, failure_reason, ip_address, user_agent)
                VALUES (%s, %s, %s, %s, %s, %s)
            """, (email, user_id, success, failure_reason, ip_address, user_agent))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str, token_hash: str, ip_address: Optional[str],
                       user_agent: Optional[str], duration_hours: int) -> str:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO admin_sessions (user_id, token_hash, ip_address, user_agent, expires_at)
                VALUES (%s, %s, %s, %s, NOW() + (%s * INTERVAL '1 hour'))
                RETURNING id
            """, (user_id, token_hash, ip_address, user_agent, duration_hours))
            row = cursor.fetchone()
            conn.commit()
            return str(row['id'])

        finally:
            cursor.close()
            conn.close()

    def find_session_user(self, token_hash: str) -> Optional[dict]:
        """Live session joined with its active, unlocked user and permissions"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    s.id AS session_id,
                    s.expires_at,
                    u.id,
                    u.email,
                    u.first_name,
                    u.last_name,
                    u.is_active,
                    u.is_locked,
                    u.must_change_password,
                    u.last_login_at,
                    u.created_at,
                    COALESCE(
                        (SELECT array_agg(DISTINCT ap.name)
                         FROM admin_user_roles aur
                         JOIN admin_role_permissions arp ON aur.role_id = arp.role_id
                         JOIN admin_permissions ap ON arp.permission_id = ap.id
                         WHERE aur.user_id = u.id),
                        ARRAY[]::text[]
                    ) AS permissions,
                    COALESCE(
                        (SELECT array_agg(ar.name)
                         FROM admin_user_roles aur
                         JOIN admin_roles ar ON aur.role_id = ar.id
                         WHERE aur.user_id = u.id),
                        ARRAY[]::text[]
                    ) AS roles
                FROM admin_sessions s
                JOIN admin_users u ON s.user_id = u.id
                WHERE s.token_hash = %s
                  AND s.revoked = false
                  AND s.expires_at > NOW()
                  AND u.is_active = true
                  AND u.is_locked = false
            """, (token_hash,))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def touch_session(self, session_id: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "UPDATE admin_sessions SET last_activity_at = NOW() WHERE id = %s",
                (session_id,)
            )
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def revoke_session_by_token_hash(self, token_hash: str, reason: str = "logout") -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_sessions
                SET revoked = true, revoked_at = NOW(), revoked_reason = %s
                WHERE token_hash = %s
            """, (reason, token_hash))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def revoke_all_user_sessions(self, user_id: str, reason: str = "logout_all") -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_sessions
                SET revoked = true, revoked_at = NOW(), revoked_reason = %s
                WHERE user_id = %s AND revoked = false
            """, (reason, user_id))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def list_active_sessions(self, user_id: str) -> List[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, ip_address, user_agent, created_at, last_activity_at, token_hash
                FROM admin_sessions
                WHERE user_id = %s
                  AND revoked = false
                  AND expires_at > NOW()
                ORDER BY last_activity_at DESC NULLS LAST
            """, (user_id,))
            return cursor.fetchall()

        finally:
            cursor.close()
            conn.close()

    def find_user_session(self, user_id: str, session_id: str) -> Optional[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, token_hash
                FROM admin_sessions
                WHERE id = %s AND user_id = %s
            """, (session_id, user_id))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def revoke_session_by_id(self, session_id: str, reason: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_sessions
                SET revoked = true, revoked_at = NOW(), revoked_reason = %s
                WHERE id = %s
            """, (reason, session_id))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def delete_expired_sessions(self) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                DELETE FROM admin_sessions
                WHERE expires_at < NOW() - INTERVAL '7 days'
            """)
            deleted = cursor.rowcount
            conn.commit()
            return deleted

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # Provisioning and password reset
    # ------------------------------------------------------------------

    def create_user(self, email: str, password_hash: str, role_name: str) -> str:
        """
        Insert an active admin user holding one role.

        Raises:
            LookupError: role_name is not in admin_roles
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT id FROM admin_roles WHERE name = %s", (role_name,))
            role = cursor.fetchone()
            if not role:
                raise LookupError(f'Role "{role_name}" not found')

            cursor.execute("""
                INSERT INTO admin_users (email, password_hash, is_active)
                VALUES (%s, %s, true)
                RETURNING id
            """, (email.lower(), password_hash))
            user_id = cursor.fetchone()['id']

            cursor.execute("""
                INSERT INTO admin_user_roles (user_id, role_id)
                VALUES (%s, %s)
            """, (user_id, role['id']))
            conn.commit()
            return str(user_id)

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def create_password_reset_token(self, user_id: str, token_hash: str, expires_at: datetime,
                                    ip_address: Optional[str], user_agent: Optional[str]) -> None:
        """Store a reset token, revoking the user's outstanding ones"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE admin_password_reset_tokens
                SET revoked = true,
                    revoked_reason = 'new_request'
                WHERE user_id = %s
                  AND used_at IS NULL
                  AND revoked = false
            """, (user_id,))
            cursor.execute("""
                INSERT INTO admin_password_reset_tokens
                    (user_id, token_hash, expires_at, ip_address, user_agent)
                VALUES (%s, %s, %s, %s, %s)
            """, (user_id, token_hash, expires_at, ip_address, user_agent))
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()
