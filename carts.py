"""
Shopping carts

One cart per user. A line is identified by (product_id, selected_size,
selected_color); a missing selector is a value of its own, not a wildcard.
Prices are captured when the line is added and total_price is recomputed
from scratch on every save.
"""
import logging
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException

import inventory
import pricing
from database import create_document, db, serialize_doc, utcnow
from products import get_product_doc, present
from schemas import Cart, CartItem, CartItemInput, CartItemKey, CartQuantityUpdate

logger = logging.getLogger(__name__)


def _line_index(items: list, product_id: str, size: Optional[str], color: Optional[str]) -> int:
    for index, it in enumerate(items):
        if it["product_id"] == product_id and it.get("selected_size") == size and it.get("selected_color") == color:
            return index
    return -1


def _save(cart: dict) -> dict:
    cart["total_price"] = pricing.items_total(cart["items"])
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": cart["items"], "total_price": cart["total_price"], "updated_at": utcnow()}},
    )
    return cart


def present_cart(cart: dict) -> dict:
    """Attach current product details to each line."""
    out = serialize_doc(cart)
    items = []
    for it in cart.get("items", []):
        prod = db["product"].find_one({"_id": ObjectId(it["product_id"])}) if ObjectId.is_valid(it["product_id"]) else None
        items.append({**it, "product": present(prod) if prod else None})
    out["items"] = items
    return out


def find_cart(user_id: str) -> Optional[dict]:
    return db["cart"].find_one({"user_id": user_id})


def get_or_create_cart(user_id: str) -> dict:
    cart = find_cart(user_id)
    if not cart:
        create_document("cart", Cart(user_id=user_id))
        cart = find_cart(user_id)
    return cart


def _require_cart(user_id: str) -> dict:
    cart = find_cart(user_id)
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found for this user.")
    return cart


def _check_stock(product: dict, quantity: int, size: Optional[str], color: Optional[str]):
    slot = inventory.require_stock_slot(product, size, color)
    if slot.available < quantity:
        raise HTTPException(
            status_code=400,
            detail=f"Not enough stock for {product['name']}. Available: {slot.available}. Requested: {quantity}",
        )


def add_item(user_id: str, payload: CartItemInput) -> dict:
    product = get_product_doc(payload.product_id)
    cart = get_or_create_cart(user_id)
    items = cart.get("items", [])
    size, color = payload.selected_size, payload.selected_color

    index = _line_index(items, payload.product_id, size, color)
    quantity = payload.quantity + (int(items[index]["quantity"]) if index > -1 else 0)
    _check_stock(product, quantity, size, color)

    if index > -1:
        items[index]["quantity"] = quantity
    else:
        items.append(CartItem(
            product_id=payload.product_id,
            quantity=quantity,
            price=float(product["price"]),
            sale_price=pricing.active_sale_price(product),
            selected_size=size,
            selected_color=color,
        ).model_dump())
    cart["items"] = items
    return present_cart(_save(cart))


def update_item_quantity(user_id: str, payload: CartQuantityUpdate) -> dict:
    cart = _require_cart(user_id)
    items = cart.get("items", [])
    index = _line_index(items, payload.product_id, payload.selected_size, payload.selected_color)
    if index == -1:
        raise HTTPException(status_code=404, detail="Item not found in cart.")

    if payload.new_quantity <= 0:
        items.pop(index)
    else:
        product = get_product_doc(payload.product_id)
        _check_stock(product, payload.new_quantity, payload.selected_size, payload.selected_color)
        items[index]["quantity"] = payload.new_quantity
    cart["items"] = items
    return present_cart(_save(cart))


def remove_item(user_id: str, key: CartItemKey) -> dict:
    cart = _require_cart(user_id)
    items = cart.get("items", [])
    index = _line_index(items, key.product_id, key.selected_size, key.selected_color)
    if index == -1:
        raise HTTPException(status_code=404, detail="Item not found in cart with specified variations.")
    items.pop(index)
    cart["items"] = items
    return present_cart(_save(cart))


def clear_cart(user_id: str) -> dict:
    cart = _require_cart(user_id)
    cart["items"] = []
    logger.debug("Cleared cart of user %s", user_id)
    return present_cart(_save(cart))
