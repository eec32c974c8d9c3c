"""
Cart Repository - Data Access Layer for anonymous carts

A cart is identified by the UUID stored in the cartId cookie. Items are
unique per (cart_id, product_id, color); adding an existing combination
adds to its quantity.

Author: TM3
Date: 2025-10-17
"""
import uuid
from typing import List, Optional

from app.core.database import get_db_connection_dict
from app.domain.cart import CartItem

CART_TTL_DAYS = 7
MAX_ITEM_QUANTITY = 100

CART_ITEMS_QUERY = """
    SELECT
        ci.id,
        ci.cart_id,
        ci.product_id,
        ci.quantity,
        ci.color,
        p.name AS product_name,
        p.slug,
        p.description,
        p.category,
        p.price AS product_price,
        p.stock,
        p.rating,
        p.is_on_sale,
        p.is_new,
        p.is_bestseller,
        p.created_at AS product_created_at,
        p.updated_at AS product_updated_at,
        row_to_json(s) AS specs,
        (SELECT json_agg(row_to_json(pi) ORDER BY pi.is_primary DESC, pi.id)
         FROM product_images pi
         WHERE pi.product_id = p.id) AS images,
        (SELECT json_agg(row_to_json(psc) ORDER BY psc.id)
         FROM product_spec_colors psc
         WHERE psc.product_id = p.id) AS colors
    FROM cart_items ci
    LEFT JOIN products p ON ci.product_id = p.id
    LEFT JOIN product_specs s ON p.id = s.product_id
    WHERE ci.cart_id = %s
    ORDER BY ci.id
"""


class CartRepository:
    """Repository for carts and cart_items"""

    def get_items(self, cart_id: str) -> List[CartItem]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(CART_ITEMS_QUERY, (cart_id,))
            return [CartItem.from_row(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def ensure_cart(self, cart_id: Optional[str]) -> str:
        """
        Return a live cart id, extending its expiry.

        A missing or stale id (no row in carts) gets a fresh UUID cart.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if cart_id:
                cursor.execute("""
                    UPDATE carts
                    SET expires_at = NOW() + (%s * INTERVAL '1 day')
                    WHERE id = %s
                    RETURNING id
                """, (CART_TTL_DAYS, cart_id))
                if cursor.fetchone():
                    conn.commit()
                    return cart_id

            new_id = str(uuid.uuid4())
            cursor.execute("""
                INSERT INTO carts (id, expires_at)
                VALUES (%s, NOW() + (%s * INTERVAL '1 day'))
            """, (new_id, CART_TTL_DAYS))
            conn.commit()
            return new_id

        finally:
            cursor.close()
            conn.close()

    def add_item(self, cart_id: str, product_id: int, quantity: int, color: str = "") -> None:
        """Insert an item or add to an existing line, capped at MAX_ITEM_QUANTITY"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO cart_items (cart_id, product_id, quantity, color)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (cart_id, product_id, color)
                DO UPDATE SET quantity = LEAST(cart_items.quantity + EXCLUDED.quantity, %s)
            """, (cart_id, product_id, quantity, color, MAX_ITEM_QUANTITY))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def update_quantity(self, cart_id: str, item_id: str, quantity: int) -> None:
        """Set an item's quantity; zero removes the item"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if quantity == 0:
                cursor.execute(
                    "DELETE FROM cart_items WHERE id = %s AND cart_id = %s",
                    (item_id, cart_id)
                )
            else:
                cursor.execute(
                    "UPDATE cart_items SET quantity = %s WHERE id = %s AND cart_id = %s",
                    (quantity, item_id, cart_id)
                )
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def remove_item(self, cart_id: str, item_id: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "DELETE FROM cart_items WHERE id = %s AND cart_id = %s",
                (item_id, cart_id)
            )
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def clear(self, cart_id: str) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM cart_items WHERE cart_id = %s", (cart_id,))
            cursor.execute("DELETE FROM carts WHERE id = %s", (cart_id,))
            conn.commit()

        finally:
            cursor.close()
            conn.close()

    def get_checkout_lines(self, cart_id: str) -> List[dict]:
        """Cart lines joined with current product price and primary image"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    ci.id,
                    ci.product_id,
                    ci.quantity,
                    ci.color,
                    p.name,
                    p.slug,
                    p.price,
                    p.category,
                    pi.image_url
                FROM cart_items ci
                JOIN products p ON ci.product_id = p.id
                LEFT JOIN product_images pi ON p.id = pi.product_id AND pi.is_primary = true
                WHERE ci.cart_id = %s
            """, (cart_id,))
            return cursor.fetchall()

        finally:
            cursor.close()
            conn.close()

    def delete_expired(self) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                DELETE FROM cart_items
                WHERE cart_id IN (SELECT id FROM carts WHERE expires_at < NOW())
            """)
            cursor.execute("DELETE FROM carts WHERE expires_at < NOW()")
            deleted = cursor.rowcount
            conn.commit()
            return deleted

        finally:
            cursor.close()
            conn.close()
