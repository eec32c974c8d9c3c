"""
Product Domain Models

Catalog entities for the Dekop store.
These are the single source of truth for product data structure.

Author: TM3
Date: 2025-10-17
"""
import re
import unicodedata
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Product(BaseModel):
    """
    Product domain model - represents a catalog item

    Fields:
        id: Internal product ID
        name: Display name
        slug: URL-safe unique identifier
        description: Long description
        category: Category key (sofas, beds, ...)
        price: Price in UAH
        stock: Units available
        rating: Average rating
        is_on_sale / is_new / is_bestseller: Merchandising flags

        # Related rows (optional, from JOINs)
        images: Product images
        specs: Category-specific specification (free-form)
        colors: Available colors
    """

    id: int = Field(..., description="Product ID")
    name: str = Field(..., description="Product name")
    slug: str = Field(..., description="URL slug")
    description: Optional[str] = Field(None, description="Product description")
    category: str = Field(..., description="Product category")
    price: Decimal = Field(..., description="Price in UAH", ge=0)
    sale_price: Optional[Decimal] = Field(None, description="Discounted price", ge=0)
    stock: int = Field(0, description="Units in stock", ge=0)
    rating: Optional[Decimal] = Field(None, description="Average rating")
    reviews: int = Field(0, description="Review count")
    is_on_sale: bool = Field(False, description="On sale")
    is_new: bool = Field(False, description="New arrival")
    is_bestseller: bool = Field(False, description="Bestseller")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    images: List[Dict[str, Any]] = Field(default_factory=list, description="Product images")
    specs: Optional[Dict[str, Any]] = Field(None, description="Specification")
    colors: List[Dict[str, Any]] = Field(default_factory=list, description="Color variants")

    model_config = ConfigDict(from_attributes=True)

    @property
    def primary_image_url(self) -> str:
        for image in self.images:
            if image.get("is_primary"):
                return image.get("image_url") or ""
        return (self.images[0].get("image_url") or "") if self.images else ""

    @property
    def is_low_stock(self) -> bool:
        return self.stock < LOW_STOCK_THRESHOLD

    def to_dict(self) -> dict:
        """Convert to dictionary with Decimal to float conversion"""
        data = self.model_dump()

        for field in ['price', 'sale_price', 'rating']:
            if data.get(field) is not None:
                data[field] = float(data[field])

        return data


LOW_STOCK_THRESHOLD = 10


# ============================================================================
# Slugs
# ============================================================================

# Ukrainian national transliteration (simplified, position-independent)
_UK_TRANSLIT = {
    'а': 'a', 'б': 'b', 'в': 'v', 'г': 'h', 'ґ': 'g', 'д': 'd', 'е': 'e',
    'є': 'ie', 'ж': 'zh', 'з': 'z', 'и': 'y', 'і': 'i', 'ї': 'i', 'й': 'i',
    'к': 'k', 'л': 'l', 'м': 'm', 'н': 'n', 'о': 'o', 'п': 'p', 'р': 'r',
    'с': 's', 'т': 't', 'у': 'u', 'ф': 'f', 'х': 'kh', 'ц': 'ts', 'ч': 'ch',
    'ш': 'sh', 'щ': 'shch', 'ь': '', 'ю': 'iu', 'я': 'ia', "'": '', 'ʼ': '',
    'ё': 'e', 'ы': 'y', 'э': 'e', 'ъ': '',
}


def slugify(text: str) -> str:
    """
    Lowercase, transliterated, hyphen-separated slug.

    >>> slugify("Диван Кутовий 'Олімп'")
    'dyvan-kutovyi-olimp'
    """
    lowered = text.strip().lower()
    transliterated = ''.join(_UK_TRANSLIT.get(ch, ch) for ch in lowered)
    ascii_text = unicodedata.normalize('NFKD', transliterated).encode('ascii', 'ignore').decode('ascii')
    slug = re.sub(r'[^a-z0-9]+', '-', ascii_text)
    return slug.strip('-')


# ============================================================================
# Categories
# ============================================================================

# Ukrainian category labels used in older catalog rows
CATEGORY_ALIASES = {
    'ліжко': 'beds',
    'диван': 'sofas',
    'кутовий диван': 'corner_sofas',
    'кутовийдиван': 'corner_sofas',
    'стіл': 'tables',
    'стілець': 'chairs',
    'матрац': 'mattresses',
    'матрас': 'mattresses',
    'шафа': 'wardrobes',
    'гардероб': 'wardrobes',
    'аксесуар': 'accessories',
}


def normalize_category(category: Optional[str]) -> str:
    """English catalog category for a possibly Ukrainian label"""
    key = (category or '').strip().lower()
    return CATEGORY_ALIASES.get(key, key)
