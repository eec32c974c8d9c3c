"""
Audit Repository - admin_audit_log writes

Author: TM3
Date: 2025-10-17
"""
import json
from typing import Any, Dict, Optional

from app.core.database import get_db_connection_dict


class AuditRepository:
    """Append-only access to admin_audit_log"""

    def log(self, user_id: Optional[str], user_email: Optional[str], action: str,
            resource: Optional[str] = None, resource_id: Optional[str] = None,
            details: Optional[Dict[str, Any]] = None, ip_address: Optional[str] = None,
            user_agent: Optional[str] = None, success: bool = True,
            error_message: Optional[str] = None) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO admin_audit_log
                    (user_id, user_email, action, resource, resource_id, details,
                     ip_address, user_agent, success, error_message)
                VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s, %s, %s, %s)
            """, (
                user_id, user_email, action, resource,
                str(resource_id) if resource_id is not None else None,
                json.dumps(details, default=str) if details else None,
                ip_address, user_agent, success, error_message
            ))
            conn.commit()

        finally:
            cursor.close()
            conn.close()
