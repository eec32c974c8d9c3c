"""
Order Domain Models

Represents order-related entities in the Dekop store.
These are the single source of truth for order data structure.

Author: TM3
Date: 2025-10-17
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.errors import sanitize_input

DELIVERY_METHODS = ("nova_poshta", "store_pickup", "courier")
PAYMENT_METHODS = ("liqpay", "monobank", "cash_on_delivery")

PHONE_RE = re.compile(r"^\+?380\d{9}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def is_valid_email(value: str) -> bool:
    return bool(value) and len(value) <= 255 and bool(EMAIL_RE.match(value))


class OrderItem(BaseModel):
    """
    Order Item domain model - a line item frozen at order time

    Fields:
        product_name / product_slug / product_category: catalog values at order time
        product_article: generated article number "{8 digits}-{product_id:06d}"
        unit_price / total_price: prices in UAH
    """

    id: Optional[Union[int, str]] = Field(None, description="Order item ID")
    order_id: Optional[str] = Field(None, description="Parent order UUID")
    product_id: Optional[int] = Field(None, description="Product catalog ID")
    product_name: str = Field(..., description="Product name at order time")
    product_slug: Optional[str] = Field(None, description="Product slug")
    product_article: Optional[str] = Field(None, description="Article number")
    quantity: int = Field(..., description="Quantity ordered", ge=1)
    color: Optional[str] = Field(None, description="Selected color")
    unit_price: Decimal = Field(..., description="Price per unit", ge=0)
    total_price: Decimal = Field(..., description="Line total", ge=0)
    product_image_url: Optional[str] = Field(None, description="Image at order time")
    product_category: Optional[str] = Field(None, description="Category at order time")

    def to_dict(self) -> dict:
        """Convert to dictionary with Decimal to float conversion"""
        data = self.model_dump()
        for field in ['unit_price', 'total_price']:
            if data.get(field) is not None:
                data[field] = float(data[field])
        return data


class Order(BaseModel):
    """
    Order domain model - a customer order with totals and payment state
    """

    id: str = Field(..., description="Order UUID")
    order_number: str = Field(..., description="Public order number, e.g. #1234567890")

    user_name: str = Field(..., description="Customer first name")
    user_surname: str = Field(..., description="Customer surname")
    user_phone: str = Field(..., description="Customer phone (+380...)")
    user_email: str = Field(..., description="Customer email")

    delivery_method: str = Field(..., description="nova_poshta, store_pickup or courier")
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_street: Optional[str] = None
    delivery_building: Optional[str] = None
    delivery_apartment: Optional[str] = None
    delivery_postal_code: Optional[str] = None
    store_location: Optional[str] = None

    subtotal: Decimal = Field(..., ge=0)
    discount_percent: Decimal = Field(Decimal('0'), ge=0, le=100)
    discount_amount: Decimal = Field(Decimal('0'), ge=0)
    delivery_cost: Decimal = Field(Decimal('0'), ge=0)
    total_amount: Decimal = Field(..., ge=0)
    prepayment_amount: Decimal = Field(Decimal('0'), ge=0)

    payment_method: str = Field(..., description="liqpay, monobank or cash_on_delivery")
    payment_status: str = Field("pending", description="pending, paid, failed or refunded")
    order_status: str = Field("processing", description="processing, confirmed, shipped, delivered or cancelled")
    payment_intent_id: Optional[str] = Field(None, description="Provider transaction / invoice id")
    payment_deadline: Optional[datetime] = None

    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    items: List[OrderItem] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @property
    def customer_name(self) -> str:
        return f"{self.user_surname} {self.user_name}".strip()

    @classmethod
    def from_row(cls, row: dict) -> "Order":
        data = dict(row)
        data['id'] = str(data['id'])
        items = [item for item in (data.pop('items', None) or []) if item and item.get('product_name')]
        for item in items:
            if item.get('order_id') is not None:
                item['order_id'] = str(item['order_id'])
        known = set(cls.model_fields)
        order = cls(**{k: v for k, v in data.items() if k in known})
        order.items = [OrderItem(**item) for item in items]
        return order

    def to_dict(self) -> dict:
        """Convert to dictionary with Decimal to float conversion"""
        data = self.model_dump()
        for field in ['subtotal', 'discount_percent', 'discount_amount', 'delivery_cost',
                      'total_amount', 'prepayment_amount']:
            if data.get(field) is not None:
                data[field] = float(data[field])
        data['items'] = [item.to_dict() for item in self.items]
        return data


class CreateOrderRequest(BaseModel):
    """Checkout payload; strings are stripped of HTML tags"""

    user_name: str = Field(..., min_length=1, max_length=100)
    user_surname: str = Field(..., min_length=1, max_length=100)
    user_phone: str
    user_email: str

    delivery_method: str
    delivery_address: Optional[str] = Field(None, max_length=500)
    delivery_city: Optional[str] = Field(None, max_length=100)
    delivery_street: Optional[str] = Field(None, max_length=200)
    delivery_building: Optional[str] = Field(None, max_length=20)
    delivery_apartment: Optional[str] = Field(None, max_length=20)
    delivery_postal_code: Optional[str] = Field(None, max_length=20)
    store_location: Optional[str] = Field(None, max_length=200)

    payment_method: str

    discount_percent: float = Field(0, ge=0, le=100)
    delivery_cost: float = Field(0, ge=0, le=10000)
    prepayment_amount: float = Field(0, ge=0)

    customer_notes: Optional[str] = Field(None, max_length=1000)
    cart_id: Optional[str] = None

    @field_validator(
        "user_name", "user_surname", "delivery_address", "delivery_city", "delivery_street",
        "delivery_building", "delivery_apartment", "delivery_postal_code", "store_location",
        "customer_notes"
    )
    @classmethod
    def strip_tags(cls, v):
        return sanitize_input(v) if v is not None else v

    @field_validator("user_phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        v = v.strip()
        if not PHONE_RE.match(v):
            raise ValueError("Invalid phone number format. Expected: +380XXXXXXXXX")
        return v if v.startswith("+") else f"+{v}"

    @field_validator("user_email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not is_valid_email(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("delivery_method")
    @classmethod
    def check_delivery_method(cls, v: str) -> str:
        if v not in DELIVERY_METHODS:
            raise ValueError("Invalid delivery method")
        return v

    @field_validator("payment_method")
    @classmethod
    def check_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError("Invalid payment method")
        return v

    @field_validator("cart_id")
    @classmethod
    def check_cart_id(cls, v):
        if v is None:
            return v
        if not UUID_RE.match(v):
            raise ValueError("Invalid UUID format")
        return v


def is_valid_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_RE.match(value))
