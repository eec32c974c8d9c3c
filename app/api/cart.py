"""
Cart API Endpoints
Anonymous shopping cart keyed by the cartId cookie

Author: TM3
Date: 2025-10-17
"""
import logging

from fastapi import APIRouter, HTTPException, Request, Response

from app.core.config import settings
from app.domain.cart import AddToCartRequest, UpdateCartItemRequest
from app.domain.order import is_valid_uuid
from app.repositories.cart_repository import CART_TTL_DAYS, CartRepository

logger = logging.getLogger(__name__)

router = APIRouter()

CART_COOKIE_NAME = "cartId"


def get_cart_id(request: Request):
    """cartId cookie, or None when missing or not a UUID"""
    cart_id = request.cookies.get(CART_COOKIE_NAME)
    return cart_id if is_valid_uuid(cart_id) else None


def set_cart_cookie(response: Response, cart_id: str) -> None:
    response.set_cookie(
        key=CART_COOKIE_NAME,
        value=cart_id,
        max_age=CART_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def _items_payload(repo: CartRepository, cart_id: str) -> dict:
    return {"items": [item.to_dict() for item in repo.get_items(cart_id)]}


@router.get("/")
async def get_cart(request: Request):
    cart_id = get_cart_id(request)
    if not cart_id:
        return {"items": []}

    try:
        return _items_payload(CartRepository(), cart_id)

    except Exception as e:
        logger.error(f"Error fetching cart {cart_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch cart")


@router.post("/")
async def add_to_cart(payload: AddToCartRequest, request: Request, response: Response):
    """
    Add a product to the cart

    Adding a product/color pair that is already in the cart increases its
    quantity. A new cart is created when the cookie is missing or stale.
    """
    try:
        repo = CartRepository()
        cart_id = repo.ensure_cart(get_cart_id(request))
        repo.add_item(cart_id, payload.product_id, payload.quantity, payload.color)

        set_cart_cookie(response, cart_id)
        return _items_payload(repo, cart_id)

    except Exception as e:
        logger.error(f"Error adding product {payload.product_id} to cart: {e}")
        raise HTTPException(status_code=500, detail="Failed to add item to cart")


@router.patch("/{item_id}")
async def update_cart_item(item_id: str, payload: UpdateCartItemRequest, request: Request):
    """Set an item's quantity; zero removes it"""
    cart_id = get_cart_id(request)
    if not cart_id or not is_valid_uuid(item_id):
        raise HTTPException(status_code=400, detail="Invalid request")

    try:
        repo = CartRepository()
        repo.update_quantity(cart_id, item_id, payload.quantity)
        return _items_payload(repo, cart_id)

    except Exception as e:
        logger.error(f"Error updating cart item {item_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update cart item")


@router.delete("/{item_id}")
async def remove_cart_item(item_id: str, request: Request):
    cart_id = get_cart_id(request)
    if not cart_id or not is_valid_uuid(item_id):
        raise HTTPException(status_code=400, detail="Invalid request")

    try:
        repo = CartRepository()
        repo.remove_item(cart_id, item_id)
        return _items_payload(repo, cart_id)

    except Exception as e:
        logger.error(f"Error removing cart item {item_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to remove cart item")


@router.post("/clear")
async def clear_cart(request: Request, response: Response):
    """Delete the cart and its items; idempotent"""
    cart_id = get_cart_id(request)
    if not cart_id:
        return {"success": True, "message": "Кошик вже очищено"}

    try:
        CartRepository().clear(cart_id)

    except Exception as e:
        logger.error(f"Error clearing cart {cart_id}: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Помилка при очищенні кошика", "details": str(e)}
        )

    response.delete_cookie(CART_COOKIE_NAME, path="/")
    return {"success": True, "message": "Кошик успішно очищено"}
