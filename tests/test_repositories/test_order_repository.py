"""
Unit tests for OrderRepository

Author: TM3
Date: 2025-10-17
"""
from unittest.mock import patch

import pytest

from app.domain.order import Order
from app.repositories.order_repository import OrderRepository, _build_admin_filters

CART_ID = "0b6c5a8e-2f0e-4a39-9d1f-6c3a3f1d2b7e"


class TestOrderCreate:
    """Order creation is one transaction: order, items, cart cleanup"""

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_create_writes_order_items_and_clears_cart(self, mock_get_conn, mock_db, sample_order_row):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.side_effect = [{'id': sample_order_row['id']}, sample_order_row]
        items = [
            {'product_id': 7, 'product_name': 'Диван Олімп', 'quantity': 1, 'unit_price': 16000, 'total_price': 16000},
            {'product_id': 8, 'product_name': 'Ліжко Соня', 'quantity': 2, 'unit_price': 9000, 'total_price': 18000},
        ]

        # Act
        order = OrderRepository().create({'order_number': '#1234567890'}, items, cart_id=CART_ID)

        # Assert
        assert isinstance(order, Order)
        assert order.order_number == '#1234567890'

        statements = [c[0][0] for c in mock_cursor.execute.call_args_list]
        assert 'INSERT INTO orders' in statements[0]
        assert sum('INSERT INTO order_items' in sql for sql in statements) == 2
        assert any(sql.startswith('DELETE FROM cart_items') for sql in statements)
        mock_conn.commit.assert_called_once()
        mock_conn.rollback.assert_not_called()

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_create_rolls_back_when_items_fail(self, mock_get_conn, mock_db):
        """No partial order is left behind"""
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = {'id': 'abc'}
        mock_cursor.execute.side_effect = [None, RuntimeError("product_name violates not-null")]

        # Act / Assert
        with pytest.raises(RuntimeError):
            OrderRepository().create({}, [{'product_id': 7}], cart_id=CART_ID)

        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()
        mock_conn.close.assert_called_once()


class TestOrderReads:

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_find_by_id_and_email_is_case_insensitive(self, mock_get_conn, mock_db, sample_order_row):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = sample_order_row

        # Act
        order = OrderRepository().find_by_id_and_email(sample_order_row['id'], 'olena@example.com')

        # Assert
        sql = mock_cursor.execute.call_args[0][0]
        assert 'LOWER(o.user_email) = LOWER(%s)' in sql
        assert order.items[0].product_article == '12345678-000007'

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_find_with_items_returns_none_when_missing(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = None

        # Act / Assert
        assert OrderRepository().find_with_items('missing') is None


class TestPaymentUpdates:

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_update_payment_sets_only_given_fields(self, mock_get_conn, mock_db, order_id):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.rowcount = 1

        # Act
        updated = OrderRepository().update_payment(order_id, 'failed')

        # Assert
        assert updated is True
        sql, params = mock_cursor.execute.call_args[0]
        assert 'payment_intent_id' not in sql
        assert 'order_status' not in sql
        assert params == ['failed', order_id]

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_update_payment_cancelled_stamps_timestamp(self, mock_get_conn, mock_db, order_id):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.rowcount = 1

        # Act
        OrderRepository().update_payment(order_id, 'failed', payment_intent_id='pi_1',
                                         order_status='cancelled', cancelled=True)

        # Assert
        sql, params = mock_cursor.execute.call_args[0]
        assert 'cancelled_at = NOW()' in sql
        assert params == ['failed', 'pi_1', 'cancelled', order_id]

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_update_payment_unknown_order(self, mock_get_conn, mock_db, order_id):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.rowcount = 0

        # Act / Assert
        assert OrderRepository().update_payment(order_id, 'paid') is False


class TestAdminQueries:

    def test_build_admin_filters_combines_conditions(self):
        where, params = _build_admin_filters(
            status='shipped', payment_status='paid', search='0501',
            date_from='2025-01-01', date_to='2025-01-31'
        )

        assert where.count(' AND ') == 4
        assert params == ['shipped', 'paid', '%0501%', '%0501%', '%0501%', '2025-01-01', '2025-01-31T23:59:59']

    def test_build_admin_filters_empty(self):
        where, params = _build_admin_filters()

        assert where == '1=1'
        assert params == []

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_admin_update_stamps_status_column(self, mock_get_conn, mock_db, order_id):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = {'id': order_id, 'order_status': 'shipped'}

        # Act
        OrderRepository().admin_update(order_id, {'order_status': 'shipped', 'bogus': 'x'}, stamp='shipped_at')

        # Assert
        sql, params = mock_cursor.execute.call_args[0]
        assert 'order_status = %s' in sql
        assert 'shipped_at = NOW()' in sql
        assert 'bogus' not in sql
        assert params == ['shipped', order_id]

    @patch('app.repositories.order_repository.get_db_connection_dict')
    def test_admin_list_falls_back_to_created_at(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = {'total': 41}
        mock_cursor.fetchall.return_value = []

        # Act
        rows, total = OrderRepository().admin_list(sort='user_email', order='asc', limit=20, offset=40)

        # Assert
        assert total == 41
        list_sql, list_params = mock_cursor.execute.call_args_list[1][0]
        assert 'ORDER BY created_at ASC' in list_sql
        assert list_params == [20, 40]
