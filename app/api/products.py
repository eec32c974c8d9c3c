"""
Products API Endpoints
Public storefront catalog: listing, search, product pages, reviews,
similar products, specs and color variants

Author: TM3
Date: 2025-10-17
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.domain.product import normalize_category
from app.repositories.product_repository import ProductRepository
from app.repositories.review_repository import ReviewRepository

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_SEARCH_LENGTH = 2
SIMILAR_PRODUCTS_LIMIT = 8


@router.get("/")
async def get_products(
    category: Optional[str] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(None, description="Search by name or description"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=500)
):
    """
    Get catalog products with images, specs and colors

    Without `limit` the whole catalog is returned.
    """
    try:
        repo = ProductRepository()
        offset = (page - 1) * limit if limit else 0

        products, total = repo.find_all(
            category=category,
            search=search,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "page": page,
            "limit": limit,
            "count": len(products),
            "data": [product.to_dict() for product in products]
        }

    except Exception as e:
        logger.error(f"Error fetching products: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch products")


@router.get("/search")
async def search_products(
    q: Optional[str] = Query(None, description="Search query"),
    limit: int = Query(10, ge=1, le=50)
):
    """Quick search by name, description or category"""
    query = (q or "").strip()
    if len(query) < MIN_SEARCH_LENGTH:
        return {
            "results": [],
            "count": 0,
            "message": "Query must be at least 2 characters"
        }

    try:
        repo = ProductRepository()
        products = repo.search(query, limit=limit)

        return {
            "results": [product.to_dict() for product in products],
            "count": len(products),
            "query": query
        }

    except Exception as e:
        logger.error(f"Search error: {e}")
        raise HTTPException(status_code=500, detail="Failed to search products")


@router.get("/by-id/{product_id}")
async def get_product_by_id(product_id: int):
    try:
        repo = ProductRepository()
        product = repo.find_by_id(product_id)

        if not product:
            raise HTTPException(status_code=404, detail="Product not found")

        return product.to_dict()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching product {product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product")


@router.get("/reviews/{product_id}")
async def get_product_reviews(product_id: int):
    if product_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid productId. Must be a positive number.")

    try:
        return ReviewRepository().find_by_product(product_id)

    except Exception as e:
        logger.error(f"Error fetching reviews for product {product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch reviews")


@router.get("/similar/{slug}")
async def get_similar_products(slug: str, limit: int = Query(SIMILAR_PRODUCTS_LIMIT, ge=1, le=24)):
    """Products from the same category as `slug`, excluding it"""
    try:
        repo = ProductRepository()
        product = repo.find_by_slug(slug)

        if not product:
            raise HTTPException(status_code=404, detail="Product not found")

        similar = repo.find_similar(product.category, slug, limit=limit)
        return [item.to_dict() for item in similar]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching similar products for {slug}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch similar products")


@router.get("/product-specs/{product_id}")
async def get_product_specs(product_id: int):
    """
    Raw product_specs row for a product

    The category is normalised to its English catalog name, so Ukrainian
    labels such as "кутовий диван" come back as "corner_sofas".
    """
    try:
        result = ProductRepository().get_specs(product_id)

        if result is None:
            raise HTTPException(status_code=404, detail="Product not found")

        category, specs = result
        if not specs:
            raise HTTPException(status_code=404, detail="Product specs not found")

        return {**specs, "category": normalize_category(category)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching specs for product {product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product specs")


@router.get("/product-colors/{product_id}")
async def get_product_colors(product_id: int):
    """Color variants; an empty list when the product has none"""
    try:
        return ProductRepository().get_colors(product_id)

    except Exception as e:
        logger.error(f"Error fetching colors for product {product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product colors")


@router.get("/{slug}")
async def get_product_by_slug(slug: str):
    try:
        repo = ProductRepository()
        product = repo.find_by_slug(slug)

        if not product:
            raise HTTPException(status_code=404, detail="Product not found")

        return product.to_dict()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching product {slug}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product")
