"""
Admin Products API Endpoints
Back-office catalog management

Author: TM3
Date: 2025-10-17
"""
import logging
import math
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.admin_auth import (
    get_current_admin,
    get_request_ip,
    get_user_agent,
    log_audit,
    require_permission,
)
from app.core.errors import format_validation_errors
from app.domain.admin import AdminProductInput, AdminUser
from app.domain.product import slugify
from app.repositories.product_repository import ProductRepository
from app.repositories.product_changelog_repository import ProductChangelogRepository

logger = logging.getLogger(__name__)

router = APIRouter()

changelog_repository = ProductChangelogRepository()


def _validate_product(body: dict):
    """Parse the payload, deriving the slug from the name when absent"""
    if not body.get("slug") and body.get("name"):
        body = {**body, "slug": slugify(str(body["name"]))}
    try:
        return AdminProductInput.model_validate(body), None
    except ValidationError as e:
        return None, JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "errors": format_validation_errors(e.errors())}
        )


def _record_change(product_id: int, admin: AdminUser, action: str, changes: Optional[dict]) -> None:
    """Append to the product's changelog; a failed write is logged only"""
    try:
        changelog_repository.record(product_id, admin.id, admin.email, action, changes)
    except Exception as e:
        logger.error(f"Failed to write changelog for product {product_id}: {e}")


@router.get("/")
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = Query(None, max_length=100),
    search: Optional[str] = Query(None, max_length=100, description="Name or slug"),
    sort: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    low_stock: bool = Query(False),
    admin: AdminUser = Depends(require_permission("products.read"))
):
    try:
        rows, total = ProductRepository().admin_list(
            page=page,
            limit=limit,
            category=category,
            search=search,
            sort=sort,
            order=order,
            low_stock=low_stock,
        )

    except Exception as e:
        logger.error(f"Get products error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch products")

    return {
        "success": True,
        "products": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        }
    }


@router.post("/", status_code=201)
async def create_product(
    request: Request,
    body: dict = Body(...),
    admin: AdminUser = Depends(require_permission("products.create"))
):
    product_input, error = _validate_product(body)
    if error:
        return error

    try:
        repo = ProductRepository()
        if repo.slug_exists(product_input.slug):
            raise HTTPException(status_code=400, detail="A product with this slug already exists")

        product = repo.create(product_input.model_dump(mode="python"))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Create product error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create product")

    log_audit(
        admin.id, admin.email, "product_created", "products", str(product["id"]),
        {"name": product["name"], "slug": product["slug"]},
        get_request_ip(request), get_user_agent(request)
    )

    return {"success": True, "product": product}


@router.get("/check-slug")
async def check_slug(
    slug: Optional[str] = Query(None),
    excludeId: Optional[int] = Query(None),
    admin: AdminUser = Depends(get_current_admin)
):
    """Whether a slug is taken, optionally ignoring the product being edited"""
    if not slug:
        raise HTTPException(status_code=400, detail="Параметр slug обов'язковий")

    try:
        exists = ProductRepository().slug_exists(slug, exclude_id=excludeId)

    except Exception as e:
        logger.error(f"Check slug error: {e}")
        raise HTTPException(status_code=500, detail="Помилка перевірки URL")

    return {"exists": exists}


@router.delete("/bulk-delete")
async def bulk_delete_products(
    request: Request,
    body: dict = Body(...),
    admin: AdminUser = Depends(require_permission("products.delete"))
):
    ids = body.get("ids")
    if not isinstance(ids, list) or not ids:
        raise HTTPException(status_code=400, detail="No products selected")
    if not all(isinstance(product_id, int) and not isinstance(product_id, bool) for product_id in ids):
        raise HTTPException(status_code=400, detail="Invalid product IDs")

    try:
        deleted = ProductRepository().bulk_delete(ids)

    except Exception as e:
        logger.error(f"Bulk delete products error: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete products")

    log_audit(
        admin.id, admin.email, "products_bulk_deleted", "products", None,
        {"deleted_count": len(deleted), "products": [dict(row) for row in deleted]},
        get_request_ip(request), get_user_agent(request)
    )

    return {"success": True, "deleted_count": len(deleted)}


@router.get("/{product_id}")
async def get_product(product_id: int, admin: AdminUser = Depends(require_permission("products.read"))):
    try:
        product = ProductRepository().find_by_id(product_id)

    except Exception as e:
        logger.error(f"Get product error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch product")

    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    return {"success": True, "product": product.to_dict()}


@router.get("/{product_id}/changelog")
async def get_product_changelog(product_id: int, admin: AdminUser = Depends(get_current_admin)):
    """Latest edits to a product, newest first"""
    try:
        rows = changelog_repository.find_by_product(product_id)

    except Exception as e:
        logger.error(f"Get changelog error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch changelog")

    return {"changelog": rows}


@router.put("/{product_id}")
async def update_product(
    product_id: int,
    request: Request,
    body: dict = Body(...),
    admin: AdminUser = Depends(require_permission("products.update"))
):
    product_input, error = _validate_product(body)
    if error:
        return error

    try:
        repo = ProductRepository()
        existing = repo.get_basic(product_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Product not found")

        if product_input.slug != existing["slug"] and repo.slug_exists(product_input.slug, exclude_id=product_id):
            raise HTTPException(status_code=400, detail="A product with this slug already exists")

        product = repo.update(product_id, product_input.model_dump(mode="python"))
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update product error: {e}")
        raise HTTPException(status_code=500, detail="Failed to update product")

    changes = {
        field: {"old": str(existing[field]), "new": str(product[field])}
        for field in ("name", "slug", "price", "stock")
        if existing.get(field) != product.get(field)
    }
    if changes:
        _record_change(product_id, admin, "updated", changes)
    log_audit(
        admin.id, admin.email, "product_updated", "products", str(product_id),
        {"name": product["name"], "changes": changes},
        get_request_ip(request), get_user_agent(request)
    )

    return {"success": True, "product": product}


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    request: Request,
    admin: AdminUser = Depends(require_permission("products.delete"))
):
    try:
        deleted = ProductRepository().delete(product_id)

    except Exception as e:
        logger.error(f"Delete product error: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete product")

    if not deleted:
        raise HTTPException(status_code=404, detail="Product not found")

    _record_change(product_id, admin, "deleted", {"name": deleted["name"], "slug": deleted["slug"]})
    log_audit(
        admin.id, admin.email, "product_deleted", "products", str(product_id),
        {"name": deleted["name"], "slug": deleted["slug"]},
        get_request_ip(request), get_user_agent(request)
    )

    return {"success": True}
