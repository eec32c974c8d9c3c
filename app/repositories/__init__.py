"""
Repository Layer - Data Access

This layer handles all database queries and returns domain models.
Repositories abstract away SQL details from business logic.

Author: TM3
Date: 2025-10-17
"""
from app.repositories.product_repository import ProductRepository
from app.repositories.cart_repository import CartRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.webhook_event_repository import WebhookEventRepository
from app.repositories.session_repository import SessionRepository
from app.repositories.admin_repository import AdminRepository
from app.repositories.audit_repository import AuditRepository
from app.repositories.review_repository import ReviewRepository
from app.repositories.product_changelog_repository import ProductChangelogRepository

__all__ = [
    'ProductRepository',
    'CartRepository',
    'OrderRepository',
    'WebhookEventRepository',
    'SessionRepository',
    'AdminRepository',
    'AuditRepository',
    'ReviewRepository',
    'ProductChangelogRepository',
]
