"""
Admin Domain Models

Back-office users and the payloads admin endpoints accept.

Author: TM3
Date: 2025-10-17
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.errors import sanitize_input


class AdminUser(BaseModel):
    """
    Authenticated back-office user with resolved roles and permissions
    """

    id: str = Field(..., description="Admin user UUID")
    email: str = Field(..., description="Login email (lowercase)")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    is_active: bool = Field(True, description="Account enabled")
    is_locked: bool = Field(False, description="Locked after repeated failed logins")
    must_change_password: bool = Field(False, description="Force password change on next login")
    last_login_at: Optional[datetime] = Field(None, description="Last successful login")
    created_at: Optional[datetime] = Field(None, description="Account creation time")
    permissions: List[str] = Field(default_factory=list, description="Permission names, e.g. orders.read")
    roles: List[str] = Field(default_factory=list, description="Role names")

    model_config = ConfigDict(from_attributes=True)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def has_any_permission(self, permissions: List[str]) -> bool:
        return any(p in self.permissions for p in permissions)

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", v):
            raise ValueError("Invalid email address")
        return v


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str = Field(...)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class ProductImageInput(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=1000)
    alt: str = Field("", max_length=255)
    is_primary: bool = False
    color: Optional[str] = Field(None, max_length=50)


class ProductColorInput(BaseModel):
    color: str = Field(..., min_length=1, max_length=50)
    image_url: str = Field(..., min_length=1, max_length=1000)


ORDER_STATUSES = ("processing", "confirmed", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


class AdminOrderUpdate(BaseModel):
    """Fields staff may change on an order"""

    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    admin_notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("order_status")
    @classmethod
    def check_order_status(cls, v):
        if v is not None and v not in ORDER_STATUSES:
            raise ValueError("Invalid order status")
        return v

    @field_validator("payment_status")
    @classmethod
    def check_payment_status(cls, v):
        if v is not None and v not in PAYMENT_STATUSES:
            raise ValueError("Invalid payment status")
        return v

    @field_validator("admin_notes")
    @classmethod
    def clean_notes(cls, v):
        return sanitize_input(v) if v is not None else v


class AdminProductInput(BaseModel):
    """Create/update payload for a catalog product"""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    category: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., gt=0, le=1_000_000)
    sale_price: Optional[Decimal] = Field(None, gt=0, le=1_000_000)
    stock: int = Field(0, ge=0, le=99999)
    is_on_sale: bool = False
    is_new: bool = False
    is_bestseller: bool = False
    images: List[ProductImageInput] = Field(default_factory=list)
    colors: List[ProductColorInput] = Field(default_factory=list)

    @field_validator("name", "description", "category")
    @classmethod
    def strip_tags(cls, v: str) -> str:
        return sanitize_input(v)

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v: str) -> str:
        if not re.match(r"^[a-z0-9-]+$", v):
            raise ValueError("Slug may contain only lowercase letters, digits and hyphens")
        return v


class BulkDeleteRequest(BaseModel):
    ids: list = Field(default_factory=list)
