"""
Webhook Event Repository - Processed webhook ledger

Persists processed payment webhook ids so replays are rejected across
processes and restarts.

Author: TM3
Date: 2025-10-17
"""
import json
from typing import Any, Optional

from app.core.database import get_db_connection_dict


class WebhookEventRepository:
    """Repository for the webhook_events table"""

    def exists_unexpired(self, webhook_id: str) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT webhook_id
                FROM webhook_events
                WHERE webhook_id = %s
                  AND expires_at > NOW()
            """, (webhook_id,))
            return cursor.fetchone() is not None

        finally:
            cursor.close()
            conn.close()

    def record(self, webhook_id: str, provider: str, ttl_seconds: int,
               payload: Optional[Any] = None) -> None:
        """Insert or refresh a processed webhook row"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO webhook_events (webhook_id, provider, payload, processed_at, expires_at)
                VALUES (%s, %s, %s, NOW(), NOW() + (%s * INTERVAL '1 second'))
                ON CONFLICT (webhook_id) DO UPDATE
                SET payload = EXCLUDED.payload,
                    processed_at = EXCLUDED.processed_at,
                    expires_at = EXCLUDED.expires_at
            """, (
                webhook_id,
                provider,
                json.dumps(payload, default=str) if payload is not None else None,
                ttl_seconds
            ))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def delete_expired(self) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM webhook_events WHERE expires_at < NOW()")
            deleted = cursor.rowcount
            conn.commit()
            return deleted

        finally:
            cursor.close()
            conn.close()

    def delete(self, webhook_id: str) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM webhook_events WHERE webhook_id = %s", (webhook_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted

        finally:
            cursor.close()
            conn.close()
