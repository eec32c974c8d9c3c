"""
Order Repository - Data Access Layer for Orders

Handles all database queries for orders and returns Order domain models.
Order creation writes the order, its items and empties the cart in a
single transaction.

Author: TM3
Date: 2025-10-17
"""
from typing import Any, Dict, List, Optional, Tuple

from app.core.database import get_db_connection_dict
from app.domain.order import Order

# Columns admins may sort by
ADMIN_SORT_COLUMNS = ('created_at', 'total_amount', 'order_number')

ORDER_INSERT_COLUMNS = (
    'order_number', 'user_name', 'user_surname', 'user_phone', 'user_email',
    'delivery_method', 'delivery_address', 'delivery_city', 'delivery_street',
    'delivery_building', 'delivery_apartment', 'delivery_postal_code', 'store_location',
    'subtotal', 'discount_percent', 'discount_amount', 'delivery_cost',
    'total_amount', 'prepayment_amount', 'payment_method',
    'customer_notes', 'payment_deadline',
)

ORDER_ITEM_COLUMNS = (
    'order_id', 'product_id', 'product_name', 'product_slug', 'product_article',
    'quantity', 'color', 'unit_price', 'total_price', 'product_image_url',
    'product_category',
)

ORDER_WITH_ITEMS_QUERY = """
    SELECT
        o.*,
        COALESCE(
            json_agg(
                json_build_object(
                    'id', oi.id,
                    'order_id', oi.order_id,
                    'product_id', oi.product_id,
                    'product_name', oi.product_name,
                    'product_slug', oi.product_slug,
                    'product_article', oi.product_article,
                    'quantity', oi.quantity,
                    'color', oi.color,
                    'unit_price', oi.unit_price,
                    'total_price', oi.total_price,
                    'product_image_url', oi.product_image_url,
                    'product_category', oi.product_category
                ) ORDER BY oi.id
            ) FILTER (WHERE oi.id IS NOT NULL),
            '[]'::json
        ) AS items
    FROM orders o
    LEFT JOIN order_items oi ON o.id = oi.order_id
    WHERE {where}
    GROUP BY o.id
"""

EXPORT_COLUMNS = """
    order_number, user_name, user_surname, user_email, user_phone,
    delivery_method, delivery_city, delivery_address, delivery_street,
    delivery_building, delivery_apartment,
    subtotal, discount_percent, discount_amount, delivery_cost,
    total_amount, prepayment_amount,
    payment_method, payment_status, order_status,
    customer_notes, admin_notes,
    created_at, shipped_at, delivered_at
"""


def _build_admin_filters(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """WHERE clause and params shared by the admin list and CSV export"""
    conditions = []
    params: List[Any] = []

    if status:
        conditions.append("order_status = %s")
        params.append(status)

    if payment_status:
        conditions.append("payment_status = %s")
        params.append(payment_status)

    if search:
        conditions.append("(order_number ILIKE %s OR user_email ILIKE %s OR user_phone ILIKE %s)")
        search_param = f"%{search}%"
        params.extend([search_param, search_param, search_param])

    if date_from:
        conditions.append("created_at >= %s")
        params.append(date_from)

    if date_to:
        # Inclusive end of day
        conditions.append("created_at <= %s")
        params.append(f"{date_to}T23:59:59")

    where_clause = " AND ".join(conditions) if conditions else "1=1"
    return where_clause, params


class OrderRepository:
    """
    Repository for Order data access

    All SQL queries for orders are centralized here.
    Returns Order domain models with their items.
    """

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create(self, order_data: Dict[str, Any], items: List[Dict[str, Any]], cart_id: Optional[str] = None) -> Order:
        """
        Insert an order with its items and clear the source cart.

        Args:
            order_data: values for ORDER_INSERT_COLUMNS
            items: dicts with ORDER_ITEM_COLUMNS except order_id
            cart_id: cart to empty once the order is written

        Returns:
            The created Order with items
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            columns = ", ".join(ORDER_INSERT_COLUMNS)
            placeholders = ", ".join(["%s"] * len(ORDER_INSERT_COLUMNS))
            cursor.execute(f"""
                INSERT INTO orders ({columns}, payment_status, order_status)
                VALUES ({placeholders}, 'pending', 'processing')
                RETURNING id
            """, [order_data.get(column) for column in ORDER_INSERT_COLUMNS])
            order_id = cursor.fetchone()['id']

            item_columns = ", ".join(ORDER_ITEM_COLUMNS)
            item_placeholders = ", ".join(["%s"] * len(ORDER_ITEM_COLUMNS))
            for item in items:
                values = [order_id] + [item.get(column) for column in ORDER_ITEM_COLUMNS[1:]]
                cursor.execute(
                    f"INSERT INTO order_items ({item_columns}) VALUES ({item_placeholders})",
                    values
                )

            if cart_id:
                cursor.execute("DELETE FROM cart_items WHERE cart_id = %s", (cart_id,))

            cursor.execute(ORDER_WITH_ITEMS_QUERY.format(where="o.id = %s"), (order_id,))
            row = cursor.fetchone()
            conn.commit()
            return Order.from_row(row)

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_with_items(self, order_id: str) -> Optional[Order]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(ORDER_WITH_ITEMS_QUERY.format(where="o.id = %s"), (order_id,))
            row = cursor.fetchone()
            return Order.from_row(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_by_id_and_email(self, order_id: str, email: str) -> Optional[Order]:
        """Customer lookup; the email must match the order (case-insensitive)"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(
                ORDER_WITH_ITEMS_QUERY.format(where="o.id = %s AND LOWER(o.user_email) = LOWER(%s)"),
                (order_id, email)
            )
            row = cursor.fetchone()
            return Order.from_row(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_by_payment_intent(self, payment_intent_id: str) -> Optional[Dict[str, Any]]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, order_number, payment_status, order_status, payment_method
                FROM orders
                WHERE payment_intent_id = %s
                LIMIT 1
            """, (payment_intent_id,))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def get_payment_state(self, order_id: str) -> Optional[Dict[str, Any]]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, order_number, payment_status, order_status, payment_method,
                       payment_intent_id, total_amount, prepayment_amount, user_email
                FROM orders
                WHERE id = %s
            """, (order_id,))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # Payment state
    # ------------------------------------------------------------------

    def set_payment_intent(self, order_id: str, payment_intent_id: str) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE orders
                SET payment_intent_id = %s, updated_at = NOW()
                WHERE id = %s
            """, (payment_intent_id, order_id))
            updated = cursor.rowcount > 0
            conn.commit()
            return updated

        finally:
            cursor.close()
            conn.close()

    def update_payment(
        self,
        order_id: str,
        payment_status: str,
        payment_intent_id: Optional[str] = None,
        order_status: Optional[str] = None,
        cancelled: bool = False,
    ) -> bool:
        """
        Update payment state of an order.

        payment_intent_id is only overwritten when given. cancelled stamps
        cancelled_at.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            set_clauses = ["payment_status = %s", "updated_at = NOW()"]
            params: List[Any] = [payment_status]

            if payment_intent_id:
                set_clauses.append("payment_intent_id = %s")
                params.append(payment_intent_id)

            if order_status:
                set_clauses.append("order_status = %s")
                params.append(order_status)

            if cancelled:
                set_clauses.append("cancelled_at = NOW()")

            params.append(order_id)
            cursor.execute(
                f"UPDATE orders SET {', '.join(set_clauses)} WHERE id = %s",
                params
            )
            updated = cursor.rowcount > 0
            conn.commit()
            return updated

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def admin_list(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        sort: str = 'created_at',
        order: str = 'desc',
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Paginated order summaries for the back office.

        Returns:
            Tuple of (rows, total count)
        """
        sort_column = sort if sort in ADMIN_SORT_COLUMNS else 'created_at'
        sort_order = 'ASC' if order == 'asc' else 'DESC'
        where_clause, params = _build_admin_filters(status, payment_status, search, date_from, date_to)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"SELECT COUNT(*) AS total FROM orders WHERE {where_clause}", params)
            total = int(cursor.fetchone()['total'] or 0)

            cursor.execute(f"""
                SELECT id, order_number, user_name, user_surname, user_email, user_phone,
                       total_amount, order_status, payment_status, payment_method,
                       delivery_method, created_at
                FROM orders
                WHERE {where_clause}
                ORDER BY {sort_column} {sort_order}
                LIMIT %s OFFSET %s
            """, params + [limit, offset])
            return cursor.fetchall(), total

        finally:
            cursor.close()
            conn.close()

    def export_rows(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        where_clause, params = _build_admin_filters(
            status=status, payment_status=payment_status, date_from=date_from, date_to=date_to
        )

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {EXPORT_COLUMNS}
                FROM orders
                WHERE {where_clause}
                ORDER BY created_at DESC
            """, params)
            return cursor.fetchall()

        finally:
            cursor.close()
            conn.close()

    def get_basic(self, order_id: str) -> Optional[Dict[str, Any]]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, order_number, order_status, payment_status, admin_notes
                FROM orders
                WHERE id = %s
            """, (order_id,))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def admin_update(self, order_id: str, updates: Dict[str, Any], stamp: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Apply admin edits.

        Args:
            updates: column -> value for order_status, payment_status, admin_notes
            stamp: shipped_at, delivered_at or cancelled_at to set to NOW()
        """
        allowed = ('order_status', 'payment_status', 'admin_notes')
        set_clauses = ["updated_at = NOW()"]
        params: List[Any] = []

        for column in allowed:
            if column in updates:
                set_clauses.append(f"{column} = %s")
                params.append(updates[column])

        if stamp in ('shipped_at', 'delivered_at', 'cancelled_at'):
            set_clauses.append(f"{stamp} = NOW()")

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            params.append(order_id)
            cursor.execute(f"""
                UPDATE orders
                SET {', '.join(set_clauses)}
                WHERE id = %s
                RETURNING id, order_number, order_status, payment_status, admin_notes,
                          shipped_at, delivered_at, cancelled_at, updated_at
            """, params)
            row = cursor.fetchone()
            conn.commit()
            return row

        finally:
            cursor.close()
            conn.close()

    def bulk_delete(self, order_ids: List[str]) -> List[Dict[str, Any]]:
        """Delete orders and their items; returns the deleted id/order_number rows"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM order_items WHERE order_id = ANY(%s::uuid[])", (order_ids,))
            cursor.execute("""
                DELETE FROM orders
                WHERE id = ANY(%s::uuid[])
                RETURNING id, order_number
            """, (order_ids,))
            rows = cursor.fetchall()
            conn.commit()
            return rows

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

