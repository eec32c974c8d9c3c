"""
Domain Layer - Pydantic models for the Dekop store

Author: TM3
Date: 2025-10-17
"""
from app.domain.product import Product, normalize_category, slugify
from app.domain.cart import CartItem, AddToCartRequest, UpdateCartItemRequest
from app.domain.order import Order, OrderItem, CreateOrderRequest
from app.domain.admin import AdminUser, AdminOrderUpdate, AdminProductInput

__all__ = [
    'Product',
    'slugify',
    'normalize_category',
    'CartItem',
    'AddToCartRequest',
    'UpdateCartItemRequest',
    'Order',
    'OrderItem',
    'CreateOrderRequest',
    'AdminUser',
    'AdminOrderUpdate',
    'AdminProductInput',
]
