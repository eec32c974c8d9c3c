"""
Admin Orders API Endpoints
Back-office order listing, editing, deletion and CSV export

Author: TM3
Date: 2025-10-17
"""
import logging
import math
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from app.core.admin_auth import get_request_ip, get_user_agent, log_audit, require_permission
from app.core.errors import format_validation_errors
from app.domain.admin import ORDER_STATUSES, PAYMENT_STATUSES, AdminOrderUpdate, AdminUser
from app.domain.order import is_valid_uuid
from app.repositories.order_repository import OrderRepository
from app.services.csv_export_service import export_filename, orders_to_csv

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_TIMESTAMPS = {
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}


@router.get("/")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="Order status"),
    payment_status: Optional[str] = Query(None, description="Payment status"),
    search: Optional[str] = Query(None, max_length=100, description="Order number, email or phone"),
    date_from: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    date_to: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    sort: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    admin: AdminUser = Depends(require_permission("orders.read"))
):
    if status and status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail={"error": "Invalid parameters", "errors": {"status": "Invalid order status"}})
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid parameters", "errors": {"payment_status": "Invalid payment status"}}
        )

    try:
        rows, total = OrderRepository().admin_list(
            status=status,
            payment_status=payment_status,
            search=search,
            date_from=date_from,
            date_to=date_to,
            sort=sort,
            order=order,
            limit=limit,
            offset=(page - 1) * limit,
        )

    except Exception as e:
        logger.error(f"Get orders error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch orders")

    return {
        "success": True,
        "orders": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        }
    }


@router.get("/export")
async def export_orders(
    request: Request,
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    date_to: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    admin: AdminUser = Depends(require_permission("orders.read"))
):
    """
    Download filtered orders as CSV

    The file starts with a UTF-8 BOM so spreadsheet apps detect the encoding.
    """
    try:
        rows = OrderRepository().export_rows(
            status=status,
            payment_status=payment_status,
            date_from=date_from,
            date_to=date_to,
        )

    except Exception as e:
        logger.error(f"Export orders error: {e}")
        raise HTTPException(status_code=500, detail="Failed to export orders")

    log_audit(
        admin.id, admin.email, "orders_exported", "orders", None,
        {"count": len(rows), "filters": {
            "status": status, "payment_status": payment_status,
            "date_from": date_from, "date_to": date_to,
        }},
        get_request_ip(request), get_user_agent(request)
    )

    return Response(
        content=orders_to_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.delete("/bulk-delete")
async def bulk_delete_orders(
    request: Request,
    body: dict = Body(...),
    admin: AdminUser = Depends(require_permission("orders.delete"))
):
    ids = body.get("ids")
    if not isinstance(ids, list) or not ids:
        raise HTTPException(status_code=400, detail="No orders selected")
    if not all(isinstance(order_id, str) and is_valid_uuid(order_id) for order_id in ids):
        raise HTTPException(status_code=400, detail="Invalid order IDs")

    try:
        deleted = OrderRepository().bulk_delete(ids)

    except Exception as e:
        logger.error(f"Bulk delete orders error: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete orders")

    log_audit(
        admin.id, admin.email, "orders_bulk_deleted", "orders", None,
        {
            "deleted_count": len(deleted),
            "orders": [{"id": str(row["id"]), "order_number": row["order_number"]} for row in deleted],
        },
        get_request_ip(request), get_user_agent(request)
    )

    return {"success": True, "deleted_count": len(deleted)}


@router.get("/{order_id}")
async def get_order(order_id: str, admin: AdminUser = Depends(require_permission("orders.read"))):
    if not is_valid_uuid(order_id):
        raise HTTPException(status_code=400, detail="Invalid order ID")

    try:
        order = OrderRepository().find_with_items(order_id)

    except Exception as e:
        logger.error(f"Get order error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch order")

    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    return {"success": True, "order": order.to_dict()}


@router.put("/{order_id}")
async def update_order(
    order_id: str,
    request: Request,
    body: dict = Body(...),
    admin: AdminUser = Depends(require_permission("orders.update"))
):
    """
    Change order status, payment status or admin notes

    Moving to shipped, delivered or cancelled stamps the matching
    *_at column. Every change is written to the audit log with old and
    new values.
    """
    if not is_valid_uuid(order_id):
        raise HTTPException(status_code=400, detail="Invalid order ID")

    try:
        update = AdminOrderUpdate.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "errors": format_validation_errors(e.errors())}
        )

    updates = update.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No valid updates provided")

    try:
        repo = OrderRepository()
        existing = repo.get_basic(order_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Order not found")

        stamp = STATUS_TIMESTAMPS.get(updates.get("order_status"))
        updated = repo.admin_update(order_id, updates, stamp=stamp)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update order error: {e}")
        raise HTTPException(status_code=500, detail="Failed to update order")

    changes = {
        field: {"old": existing.get(field), "new": value}
        for field, value in updates.items()
    }
    log_audit(
        admin.id, admin.email, "order_updated", "orders", order_id,
        {"order_number": existing["order_number"], "changes": changes},
        get_request_ip(request), get_user_agent(request)
    )

    return {"success": True, "order": updated}
