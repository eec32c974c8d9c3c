"""
Review Repository - Customer product reviews (read-only)

Author: TM3
Date: 2025-10-17
"""
from typing import List

from app.core.database import get_db_connection_dict


class ReviewRepository:
    """Repository for the reviews table"""

    def find_by_product(self, product_id: int) -> List[dict]:
        """Reviews for a product, newest first"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, product_id, user_name, rating, comment, created_at
                FROM reviews
                WHERE product_id = %s
                ORDER BY created_at DESC
            """, (product_id,))
            return cursor.fetchall()

        finally:
            cursor.close()
            conn.close()
