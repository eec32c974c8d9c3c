"""
Product Changelog Repository - Per-product edit history

Rows are written when an admin updates or deletes a product and are kept
after the product itself is gone.

Author: TM3
Date: 2025-10-17
"""
import json
from typing import Any, Dict, List, Optional

from app.core.database import get_db_connection_dict

CHANGELOG_LIMIT = 50


class ProductChangelogRepository:
    """Repository for product_changelog"""

    def record(self, product_id: int, admin_id: Optional[str], admin_email: Optional[str],
               action: str, changes: Optional[Dict[str, Any]] = None) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO product_changelog (product_id, admin_id, admin_email, action, changes)
                VALUES (%s, %s, %s, %s, %s::jsonb)
            """, (
                product_id, admin_id, admin_email, action,
                json.dumps(changes, default=str) if changes else None
            ))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def find_by_product(self, product_id: int, limit: int = CHANGELOG_LIMIT) -> List[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, product_id, admin_email, action, changes, created_at
                FROM product_changelog
                WHERE product_id = %s
                ORDER BY created_at DESC
                LIMIT %s
            """, (product_id, limit))
            return cursor.fetchall()

        finally:
            cursor.close()
            conn.close()
