"""
Orders API Endpoints
Checkout, order confirmation emails and customer order lookup

Author: TM3
Date: 2025-10-17
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.errors import format_validation_errors
from app.domain.order import CreateOrderRequest, is_valid_email, is_valid_uuid
from app.repositories.cart_repository import CartRepository
from app.repositories.order_repository import OrderRepository
from app.services import email_service
from app.services.order_utils import (
    calculate_subtotal,
    calculate_totals,
    generate_order_number,
    generate_product_article,
    payment_deadline,
)

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_CUSTOMER_FIELDS = ("user_name", "user_surname", "user_phone", "user_email")


def build_order_items(lines: list) -> list:
    """Snapshot cart lines into order_items rows"""
    items = []
    for line in lines:
        quantity = int(line['quantity'])
        items.append({
            "product_id": line['product_id'],
            "product_name": line['name'],
            "product_slug": line.get('slug'),
            "product_article": generate_product_article(line['product_id']),
            "quantity": quantity,
            "color": line.get('color') or "",
            "unit_price": line['price'],
            "total_price": line['price'] * quantity,
            "product_image_url": line.get('image_url'),
            "product_category": line.get('category'),
        })
    return items


@router.post("/", status_code=201)
async def create_order(request: Request, body: dict = Body(...)):
    """
    Create an order from the current cart

    The cart id comes from the cartId cookie, or from `cart_id` in the body.
    Prices are taken from the products table, never from the client. The
    cart is emptied in the same transaction that writes the order.
    """
    cart_id = request.cookies.get("cartId") or body.get("cart_id")
    if not cart_id:
        raise HTTPException(status_code=404, detail="Кошик не знайдено")

    if any(not body.get(field) for field in REQUIRED_CUSTOMER_FIELDS):
        raise HTTPException(status_code=400, detail="Відсутні обов'язкові поля")

    try:
        payload = CreateOrderRequest.model_validate({**body, "cart_id": cart_id})
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "errors": format_validation_errors(e.errors())}
        )

    try:
        lines = CartRepository().get_checkout_lines(cart_id)
        if not lines:
            raise HTTPException(status_code=404, detail="Кошик порожній або не знайдено")

        totals = calculate_totals(
            calculate_subtotal(lines),
            discount_percent=payload.discount_percent,
            delivery_cost=payload.delivery_cost,
            prepayment_amount=payload.prepayment_amount,
        )

        order_data = payload.model_dump(exclude={"cart_id", "discount_percent", "delivery_cost", "prepayment_amount"})
        order_data.update(totals)
        order_data["order_number"] = generate_order_number()
        order_data["payment_deadline"] = payment_deadline()

        order = OrderRepository().create(order_data, build_order_items(lines), cart_id=cart_id)
        logger.info(f"Order {order.order_number} created ({order.id}) for {len(lines)} cart lines")

        return {
            "success": True,
            "order": order.to_dict(),
            "message": "Замовлення успішно створено"
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating order: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Помилка при створенні замовлення", "details": str(e)}
        )


@router.post("/send-confirmation")
async def send_confirmation(body: dict = Body(...)):
    order_id = body.get("orderId")
    if not order_id or not is_valid_uuid(str(order_id)):
        raise HTTPException(status_code=400, detail="Order ID is required")

    order = OrderRepository().find_with_items(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    try:
        await email_service.send_order_confirmation_email(order)
    except email_service.EmailDeliveryError as e:
        logger.error(f"Error sending confirmation email for order {order_id}: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to send confirmation email", "details": str(e)}
        )

    logger.info(f"Confirmation email sent for order {order_id}")
    return {"success": True, "message": "Confirmation email sent successfully"}


@router.get("/{order_id}")
async def get_order(order_id: str, email: Optional[str] = Query(None)):
    """
    Order details for the customer who placed it

    Both the order id and the customer email must match.
    """
    if not is_valid_uuid(order_id):
        raise HTTPException(status_code=400, detail="Order ID is required")
    if not email or not is_valid_email(email.strip().lower()):
        raise HTTPException(status_code=400, detail="Email is required")

    try:
        order = OrderRepository().find_by_id_and_email(order_id, email.strip().lower())

    except Exception as e:
        logger.error(f"Error fetching order {order_id}: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Помилка при отриманні замовлення", "details": str(e)}
        )

    if not order:
        raise HTTPException(status_code=404, detail="Замовлення не знайдено")

    return {"success": True, "order": order.to_dict()}
