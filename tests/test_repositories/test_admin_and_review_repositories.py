"""
Unit tests for the admin, changelog and review repositories

Author: TM3
Date: 2025-10-17
"""
import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from app.repositories.admin_repository import AdminRepository
from app.repositories.product_changelog_repository import CHANGELOG_LIMIT, ProductChangelogRepository
from app.repositories.review_repository import ReviewRepository


class TestProductChangelogRepository:

    @patch('app.repositories.product_changelog_repository.get_db_connection_dict')
    def test_record_serializes_changes(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn

        # Act
        ProductChangelogRepository().record(7, "u1", "admin@dekop.ua", "updated",
                                            {"price": {"old": "100", "new": "120"}})

        # Assert
        sql, params = mock_cursor.execute.call_args[0]
        assert 'INSERT INTO product_changelog' in sql
        assert params[:4] == (7, "u1", "admin@dekop.ua", "updated")
        assert json.loads(params[4]) == {"price": {"old": "100", "new": "120"}}
        mock_conn.commit.assert_called_once()

    @patch('app.repositories.product_changelog_repository.get_db_connection_dict')
    def test_find_by_product_is_newest_first_and_limited(self, mock_get_conn, mock_db):
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchall.return_value = [{"id": 2, "action": "updated"}]

        rows = ProductChangelogRepository().find_by_product(7)

        sql, params = mock_cursor.execute.call_args[0]
        assert 'ORDER BY created_at DESC' in sql
        assert params == (7, CHANGELOG_LIMIT)
        assert rows == [{"id": 2, "action": "updated"}]


class TestReviewRepository:

    @patch('app.repositories.review_repository.get_db_connection_dict')
    def test_find_by_product(self, mock_get_conn, mock_db):
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchall.return_value = [{"id": 1, "rating": 5}]

        reviews = ReviewRepository().find_by_product(7)

        assert reviews == [{"id": 1, "rating": 5}]
        assert mock_cursor.execute.call_args[0][1] == (7,)
        mock_conn.close.assert_called_once()


class TestAdminProvisioning:
    """User creation and password reset tokens"""

    @patch('app.repositories.admin_repository.get_db_connection_dict')
    def test_create_user_assigns_role(self, mock_get_conn, mock_db):
        # Arrange
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.side_effect = [{"id": 1}, {"id": "u1"}]

        # Act
        user_id = AdminRepository().create_user("Admin@Dekop.ua", "hash", "manager")

        # Assert
        assert user_id == "u1"
        insert_user_params = mock_cursor.execute.call_args_list[1][0][1]
        assert insert_user_params == ("admin@dekop.ua", "hash")
        assert mock_cursor.execute.call_args_list[2][0][1] == ("u1", 1)
        mock_conn.commit.assert_called_once()

    @patch('app.repositories.admin_repository.get_db_connection_dict')
    def test_create_user_with_unknown_role_rolls_back(self, mock_get_conn, mock_db):
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        mock_cursor.fetchone.return_value = None

        with pytest.raises(LookupError):
            AdminRepository().create_user("admin@dekop.ua", "hash", "owner")

        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    @patch('app.repositories.admin_repository.get_db_connection_dict')
    def test_reset_token_revokes_outstanding_tokens_first(self, mock_get_conn, mock_db):
        mock_conn, mock_cursor = mock_db
        mock_get_conn.return_value = mock_conn
        expires_at = datetime(2025, 10, 17, 13, 0, tzinfo=timezone.utc)

        AdminRepository().create_password_reset_token("u1", "h" * 64, expires_at, "1.2.3.4", "pytest")

        revoke_sql = mock_cursor.execute.call_args_list[0][0][0]
        insert_sql, insert_params = mock_cursor.execute.call_args_list[1][0]
        assert "revoked_reason = 'new_request'" in revoke_sql
        assert 'INSERT INTO admin_password_reset_tokens' in insert_sql
        assert insert_params == ("u1", "h" * 64, expires_at, "1.2.3.4", "pytest")
        mock_conn.commit.assert_called_once()
