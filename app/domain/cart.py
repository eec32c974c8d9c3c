"""
Cart Domain Models

Author: TM3
Date: 2025-10-17
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.core.errors import sanitize_input


class CartItem(BaseModel):
    """
    Cart line enriched with the product it points to

    product_details mirrors the catalog row (images, specs, colors) so the
    storefront can render the cart without extra requests.
    """

    id: str = Field(..., description="Cart item UUID")
    product_id: int = Field(..., description="Product ID")
    slug: Optional[str] = Field(None, description="Product slug")
    name: Optional[str] = Field(None, description="Product name")
    price: Decimal = Field(Decimal('0'), description="Unit price")
    quantity: int = Field(..., ge=1, le=100, description="Quantity")
    color: str = Field("", description="Selected color")
    image_url: str = Field("", description="First product image")
    product_details: Dict[str, Any] = Field(default_factory=dict, description="Full product row")
    colors: List[Dict[str, Any]] = Field(default_factory=list, description="Available colors")

    @classmethod
    def from_row(cls, row: dict) -> "CartItem":
        images = row.get('images') or []
        colors = row.get('colors') or []
        return cls(
            id=str(row['id']),
            product_id=row['product_id'],
            slug=row.get('slug'),
            name=row.get('product_name'),
            price=row.get('product_price') or Decimal('0'),
            quantity=row['quantity'],
            color=row.get('color') or "",
            image_url=(images[0].get('image_url') if images else "") or "",
            product_details={
                "id": row['product_id'],
                "name": row.get('product_name'),
                "slug": row.get('slug'),
                "description": row.get('description'),
                "category": row.get('category'),
                "price": row.get('product_price'),
                "stock": row.get('stock'),
                "rating": row.get('rating'),
                "reviews": 0,
                "is_on_sale": row.get('is_on_sale'),
                "is_new": row.get('is_new'),
                "is_bestseller": row.get('is_bestseller'),
                "created_at": row.get('product_created_at'),
                "updated_at": row.get('product_updated_at'),
                "specs": row.get('specs'),
                "images": images,
                "colors": colors,
            },
            colors=colors,
        )

    def to_dict(self) -> dict:
        data = self.model_dump()
        data['price'] = float(self.price)
        details = data.pop('product_details')
        for key in ('price', 'rating'):
            if details.get(key) is not None:
                details[key] = float(details[key])
        data['productDetails'] = details
        return data


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=0, le=100)


class AddToCartRequest(BaseModel):
    product_id: int = Field(..., gt=0, validation_alias=AliasChoices("product_id", "productId"))
    quantity: int = Field(1, ge=1, le=100)
    color: str = Field("", max_length=50)

    @field_validator("color")
    @classmethod
    def clean_color(cls, v: str) -> str:
        return sanitize_input(v)
