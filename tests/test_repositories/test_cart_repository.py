"""
Unit tests for CartRepository

Author: TM3
Date: 2025-10-17
"""
import uuid
from unittest.mock import patch

from app.domain.cart import CartItem
from app.repositories.cart_repository import CART_TTL_DAYS, MAX_ITEM_QUANTITY, CartRepository

CART_ID = "0b6c5a8e-2f0e-4a39-9d1f-6c3a3f1d2b7e"


class TestCartRepository:
    """Test CartRepository methods"""

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_ensure_cart_extends_existing_cart(self, mock_get_conn, mock_db):
        """A known cart id is kept and its expiry pushed forward"""
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = {'id': CART_ID}

        # Act
        cart_id = CartRepository().ensure_cart(CART_ID)

        # Assert
        assert cart_id == CART_ID
        sql, params = mock_cursor.execute.call_args[0]
        assert 'UPDATE carts' in sql
        assert params == (CART_TTL_DAYS, CART_ID)
        mock_conn.commit.assert_called_once()

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_ensure_cart_creates_new_cart_for_stale_id(self, mock_get_conn, mock_db):
        """An id with no carts row gets replaced by a fresh UUID"""
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = None

        # Act
        cart_id = CartRepository().ensure_cart(CART_ID)

        # Assert
        assert cart_id != CART_ID
        uuid.UUID(cart_id)
        insert_sql = mock_cursor.execute.call_args_list[-1][0][0]
        assert 'INSERT INTO carts' in insert_sql

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_ensure_cart_without_id_skips_lookup(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn

        # Act
        CartRepository().ensure_cart(None)

        # Assert
        mock_cursor.execute.assert_called_once()
        assert 'INSERT INTO carts' in mock_cursor.execute.call_args[0][0]

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_add_item_merges_same_product_and_color(self, mock_get_conn, mock_db):
        """Adding the same product/color pair increments the quantity, never past the line limit"""
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn

        # Act
        CartRepository().add_item(CART_ID, 7, 2, "Сірий")

        # Assert
        sql, params = mock_cursor.execute.call_args[0]
        assert 'ON CONFLICT (cart_id, product_id, color)' in sql
        assert 'LEAST(cart_items.quantity + EXCLUDED.quantity, %s)' in sql
        assert params == (CART_ID, 7, 2, "Сірий", MAX_ITEM_QUANTITY)

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_update_quantity_zero_deletes_item(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        item_id = str(uuid.uuid4())

        # Act
        CartRepository().update_quantity(CART_ID, item_id, 0)

        # Assert
        sql, params = mock_cursor.execute.call_args[0]
        assert sql.startswith('DELETE FROM cart_items')
        assert params == (item_id, CART_ID)

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_update_quantity_scoped_to_cart(self, mock_get_conn, mock_db):
        """An item id from another cart matches no rows"""
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        item_id = str(uuid.uuid4())

        # Act
        CartRepository().update_quantity(CART_ID, item_id, 3)

        # Assert
        sql, params = mock_cursor.execute.call_args[0]
        assert 'WHERE id = %s AND cart_id = %s' in sql
        assert params == (3, item_id, CART_ID)

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_get_items_maps_rows(self, mock_get_conn, mock_db):
        """Rows become CartItem models with productDetails"""
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchall.return_value = [{
            'id': uuid.UUID('11111111-1111-1111-1111-111111111111'),
            'cart_id': CART_ID,
            'product_id': 7,
            'quantity': 2,
            'color': None,
            'product_name': 'Диван Олімп',
            'slug': 'dyvan-olimp',
            'product_price': 16000,
            'images': [{'image_url': '/img/olimp.jpg'}],
            'colors': None,
            'specs': None,
        }]

        # Act
        items = CartRepository().get_items(CART_ID)

        # Assert
        assert len(items) == 1
        assert isinstance(items[0], CartItem)
        data = items[0].to_dict()
        assert data['id'] == '11111111-1111-1111-1111-111111111111'
        assert data['color'] == ''
        assert data['image_url'] == '/img/olimp.jpg'
        assert data['price'] == 16000.0
        assert data['productDetails']['slug'] == 'dyvan-olimp'
        assert data['colors'] == []

    @patch('app.repositories.cart_repository.get_db_connection_dict')
    def test_delete_expired_removes_items_then_carts(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.rowcount = 3

        # Act
        deleted = CartRepository().delete_expired()

        # Assert
        assert deleted == 3
        statements = [c[0][0] for c in mock_cursor.execute.call_args_list]
        assert 'DELETE FROM cart_items' in statements[0]
        assert 'DELETE FROM carts' in statements[1]
        mock_conn.commit.assert_called_once()
