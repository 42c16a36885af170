"""
Order workflow

Orders are built from the caller's cart or from a single direct purchase.
Every line is priced and snapshotted from the live product, stock is checked
for all lines before anything is written, and then the stock decrements and
the order insert run in one transaction. Cancelling or deleting an order
puts the stock back, again inside a transaction.
"""
import logging
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import HTTPException

import carts
import inventory
import pricing
from database import create_document, db, serialize_doc, to_object_id, transaction, utcnow
from schemas import (
    ORDER_STATUSES, PAYMENT_STATUSES, DirectOrderInput, Order, OrderFromCartInput, OrderItem, ShippingAddress,
)

logger = logging.getLogger(__name__)

# (product_id, quantity, selected_size, selected_color)
LineRequest = Tuple[str, int, Optional[str], Optional[str]]


def _snapshot(product: dict, quantity: int, size: Optional[str], color: Optional[str]) -> dict:
    images = product.get("images") or []
    return OrderItem(
        product_id=str(product["_id"]),
        name=product["name"],
        price=float(product["price"]),
        sale_price=pricing.active_sale_price(product),
        quantity=quantity,
        selected_size=size,
        selected_color=color,
        image_url=images[0] if images else None,
    ).model_dump()


def build_order_lines(requests: List[LineRequest]) -> Tuple[List[Tuple[dict, dict]], float]:
    """
    Validate stock for every requested line and snapshot it.

    Demand is summed per stock slot, so two lines drawing on the same slot
    cannot each pass on their own and oversell together. Returns
    (product, snapshot) pairs and the total computed from live prices.
    """
    lines = []
    demand: Dict[Tuple[str, str], int] = {}
    total = 0.0
    for product_id, quantity, size, color in requests:
        product = db["product"].find_one({"_id": to_object_id(product_id, "product ID")})
        if not product:
            raise HTTPException(status_code=404, detail=f"Product with ID {product_id} not found.")
        slot = inventory.require_stock_slot(product, size, color)
        key = (str(product["_id"]), slot.path)
        demand[key] = demand.get(key, 0) + quantity
        inventory.check_available(product, slot, demand[key], size, color)

        lines.append((product, _snapshot(product, quantity, size, color)))
        total += pricing.product_effective_price(product) * quantity
    return lines, round(total, 2)


def _place_order(user_id: str, lines: List[Tuple[dict, dict]], expected_total: float,
                 shipping_address: ShippingAddress, payment_method: str) -> str:
    items = [item for _, item in lines]
    with transaction() as session:
        applied = []
        try:
            for product, item in lines:
                inventory.apply_stock_delta(product, item, -1, session=session)
                applied.append((product, item))
            order_id = _insert_order(user_id, items, expected_total, shipping_address, payment_method, session)
        except Exception:
            # Without a session nothing rolls back for us
            if session is None and applied:
                logger.warning("Order for user %s failed, putting back stock for %d line(s)", user_id, len(applied))
                for product, item in applied:
                    inventory.apply_stock_delta(product, item, +1)
            raise
    logger.info("Order %s placed by user %s: %d line(s)", order_id, user_id, len(items))
    return order_id


def _insert_order(user_id: str, items: List[dict], expected_total: float,
                  shipping_address: ShippingAddress, payment_method: str, session) -> str:
    total_amount = pricing.items_total(items)
    if abs(total_amount - expected_total) > 0.005:
        raise RuntimeError(f"Order total mismatch: built {expected_total}, snapshot {total_amount}")
    order = Order(
        user_id=user_id,
        items=items,
        total_amount=total_amount,
        shipping_address=shipping_address,
        payment_method=payment_method,
    )
    return create_document("order", order, session=session)


def create_order_from_cart(user_id: str, payload: OrderFromCartInput) -> dict:
    cart = carts.get_or_create_cart(user_id)
    if not cart.get("items"):
        raise HTTPException(status_code=400, detail="Cannot create an order from an empty cart.")
    requests = [
        (it["product_id"], int(it["quantity"]), it.get("selected_size"), it.get("selected_color"))
        for it in cart["items"]
    ]
    lines, expected_total = build_order_lines(requests)
    order_id = _place_order(user_id, lines, expected_total, payload.shipping_address, payload.payment_method)
    # Not part of the order transaction
    carts.clear_cart(user_id)
    return get_order(order_id)


def create_direct_order(user_id: str, payload: DirectOrderInput) -> dict:
    lines, expected_total = build_order_lines(
        [(payload.product_id, payload.quantity, payload.selected_size, payload.selected_color)]
    )
    order_id = _place_order(user_id, lines, expected_total, payload.shipping_address, payload.payment_method)
    return get_order(order_id)


# -----------------
# Reads
# -----------------

def _present(orders: List[dict]) -> List[dict]:
    """Serialize orders with a short summary of the ordering user."""
    user_ids = {o["user_id"] for o in orders if ObjectId.is_valid(o.get("user_id", ""))}
    users = {
        str(u["_id"]): {
            "id": str(u["_id"]),
            "username": u.get("username"),
            "email": u.get("email"),
            "phone_number": u.get("phone_number"),
        }
        for u in db["user"].find({"_id": {"$in": [ObjectId(i) for i in user_ids]}})
    }
    out = []
    for order in orders:
        doc = serialize_doc(order)
        doc["user"] = users.get(order.get("user_id"))
        out.append(doc)
    return out


def get_order_doc(order_id: str, session=None) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "order ID")}, session=session)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found.")
    return order


def get_order(order_id: str) -> dict:
    return _present([get_order_doc(order_id)])[0]


def list_orders_for_user(user_id: str) -> list:
    to_object_id(user_id, "user ID")
    return _present(list(db["order"].find({"user_id": user_id}).sort("created_at", -1)))


def list_all_orders() -> list:
    return _present(list(db["order"].find({}).sort("created_at", -1)))


# -----------------
# Status changes & deletion
# -----------------

def _restore_stock(order: dict, session=None):
    for item in order.get("items", []):
        product = db["product"].find_one({"_id": to_object_id(item["product_id"])}, session=session)
        if not product:
            logger.warning("Product %s not found, stock not reverted for order %s", item["product_id"], order["_id"])
            continue
        inventory.apply_stock_delta(product, item, +1, session=session)


def update_order_status(order_id: str, new_status: str) -> dict:
    """
    Set order_status to any member of ORDER_STATUSES.

    Moving into `cancelled` from any other status puts every line's stock
    back; no other transition touches stock.
    """
    oid = to_object_id(order_id, "order ID")
    with transaction() as session:
        order = get_order_doc(order_id, session=session)
        if new_status not in ORDER_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid order status: {new_status}.")
        original_status = order.get("order_status")
        db["order"].update_one(
            {"_id": oid}, {"$set": {"order_status": new_status, "updated_at": utcnow()}}, session=session
        )
        if new_status == "cancelled" and original_status != "cancelled":
            logger.info("Reverting stock for cancelled order %s", order_id)
            _restore_stock(order, session=session)
    return get_order(order_id)


def update_payment_status(order_id: str, new_payment_status: str) -> dict:
    order = get_order_doc(order_id)
    if new_payment_status not in PAYMENT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid payment status: {new_payment_status}.")
    db["order"].update_one(
        {"_id": order["_id"]}, {"$set": {"payment_status": new_payment_status, "updated_at": utcnow()}}
    )
    return get_order(order_id)


def delete_order(order_id: str) -> dict:
    oid = to_object_id(order_id, "order ID")
    with transaction() as session:
        order = get_order_doc(order_id, session=session)
        _restore_stock(order, session=session)
        db["order"].delete_one({"_id": oid}, session=session)
    logger.info("Deleted order %s", order_id)
    return serialize_doc(order)
