"""
Session Repository - Storefront sessions and single-use CSRF tokens

Author: TM3
Date: 2025-10-17
"""
import json
from typing import Any, Dict, Optional

from app.core.database import get_db_connection_dict


class SessionRepository:
    """Repository for the sessions and csrf_tokens tables"""

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------

    def create(self, session_id: str, token_hash: str, user_id: Optional[str],
               metadata: Optional[Dict[str, Any]], expiry_seconds: int) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO sessions (id, token_hash, user_id, metadata, expires_at)
                VALUES (%s, %s, %s, %s, NOW() + (%s * INTERVAL '1 second'))
            """, (
                session_id,
                token_hash,
                user_id,
                json.dumps(metadata) if metadata else None,
                expiry_seconds
            ))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def find_active_by_token_hash(self, token_hash: str) -> Optional[dict]:
        """Return the live session for a token hash and touch last_accessed_at"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, user_id, metadata, expires_at
                FROM sessions
                WHERE token_hash = %s
                  AND expires_at > NOW()
                  AND revoked = false
                LIMIT 1
            """, (token_hash,))
            row = cursor.fetchone()
            if not row:
                return None

            cursor.execute(
                "UPDATE sessions SET last_accessed_at = NOW() WHERE id = %s",
                (row['id'],)
            )
            conn.commit()
            return dict(row)

        finally:
            cursor.close()
            conn.close()

    def revoke(self, session_id: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("UPDATE sessions SET revoked = true WHERE id = %s", (session_id,))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def extend(self, session_id: str, expiry_seconds: int) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE sessions
                SET expires_at = NOW() + (%s * INTERVAL '1 second')
                WHERE id = %s
                  AND revoked = false
            """, (expiry_seconds, session_id))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def delete_expired(self) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM sessions WHERE expires_at < NOW()")
            deleted = cursor.rowcount
            conn.commit()
            return deleted

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # csrf_tokens
    # ------------------------------------------------------------------

    def store_csrf_token(self, token: str, session_id: str, expiry_seconds: int) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO csrf_tokens (token, session_id, expires_at)
                VALUES (%s, %s, NOW() + (%s * INTERVAL '1 second'))
                ON CONFLICT (token) DO UPDATE
                SET session_id = EXCLUDED.session_id,
                    expires_at = EXCLUDED.expires_at,
                    used = false
            """, (token, session_id, expiry_seconds))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def consume_csrf_token(self, token: str, session_id: str) -> bool:
        """Mark a live, unused token as used. Returns False if none matched."""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE csrf_tokens
                SET used = true
                WHERE token = %s
                  AND session_id = %s
                  AND expires_at > NOW()
                  AND used = false
                RETURNING token
            """, (token, session_id))
            row = cursor.fetchone()
            conn.commit()
            return row is not None

        finally:
            cursor.close()
            conn.close()

    def delete_expired_csrf_tokens(self) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM csrf_tokens WHERE expires_at < NOW()")
            deleted = cursor.rowcount
            conn.commit()
            return deleted

        finally:
            cursor.close()
            conn.close()
