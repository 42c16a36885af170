"""
Per-variant stock bookkeeping

A product keeps a scalar `stock` and optionally `sizes[]` / `colors[]`, each
entry with its own stock. A line (cart item or order snapshot) draws from
exactly one of these fields, its stock slot:

    size selected and product has sizes   -> sizes.<i>.stock
    color selected and product has colors -> colors.<i>.stock
    otherwise                             -> stock

Order creation, cancellation and deletion all move stock through
apply_stock_delta, so a cancelled line is put back into the same slot it was
taken from.
"""
import logging
from typing import NamedTuple, Optional

from fastapi import HTTPException

from database import db, utcnow

logger = logging.getLogger(__name__)


class StockSlot(NamedTuple):
    path: str
    available: int
    # filter pinning the variant entry the index in `path` points at
    guard: dict


def find_stock_slot(product: dict, size: Optional[str] = None, color: Optional[str] = None) -> Optional[StockSlot]:
    """Resolve the slot a selection draws from, None if the variant is gone."""
    sizes = product.get("sizes") or []
    colors = product.get("colors") or []
    if size and sizes:
        for index, option in enumerate(sizes):
            if option.get("size") == size:
                return StockSlot(f"sizes.{index}.stock", int(option.get("stock", 0)), {f"sizes.{index}.size": size})
        return None
    if color and colors:
        for index, option in enumerate(colors):
            if option.get("color") == color:
                return StockSlot(f"colors.{index}.stock", int(option.get("stock", 0)), {f"colors.{index}.color": color})
        return None
    return StockSlot("stock", int(product.get("stock", 0)), {})


def require_stock_slot(product: dict, size: Optional[str] = None, color: Optional[str] = None) -> StockSlot:
    slot = find_stock_slot(product, size, color)
    if slot is None:
        if size and product.get("sizes"):
            detail = f"Size {size} not found for product {product.get('name')}."
        else:
            detail = f"Color {color} not found for product {product.get('name')}."
        raise HTTPException(status_code=400, detail=detail)
    return slot


def insufficient_stock_message(product: dict, requested: int, available: int,
                               size: Optional[str] = None, color: Optional[str] = None) -> str:
    return (
        f"Insufficient stock for product: {product.get('name')} "
        f"(Size: {size or 'N/A'}, Color: {color or 'N/A'}). "
        f"Requested: {requested}, Available: {available}."
    )


def check_available(product: dict, slot: StockSlot, requested: int,
                    size: Optional[str] = None, color: Optional[str] = None):
    if slot.available < requested:
        raise HTTPException(
            status_code=400,
            detail=insufficient_stock_message(product, requested, slot.available, size, color),
        )


def apply_stock_delta(product: dict, line: dict, sign: int, session=None) -> bool:
    """
    Move `line["quantity"]` units into (+1) or out of (-1) the line's stock slot.

    Decrements only match while the slot still holds enough units, so a
    concurrent order that got there first turns into an insufficient-stock
    error instead of negative stock. Increments skip lines whose variant no
    longer exists and return False for them.
    """
    if sign not in (1, -1):
        raise ValueError("sign must be +1 or -1")
    quantity = int(line["quantity"])
    size = line.get("selected_size")
    color = line.get("selected_color")

    if sign < 0:
        slot = require_stock_slot(product, size, color)
        query = {"_id": product["_id"], slot.path: {"$gte": quantity}, **slot.guard}
    else:
        slot = find_stock_slot(product, size, color)
        if slot is None:
            logger.warning(
                "Variant (size=%s, color=%s) of product %s is gone, stock not reverted",
                size, color, product["_id"],
            )
            return False
        query = {"_id": product["_id"], **slot.guard}

    result = db["product"].update_one(
        query,
        {"$inc": {slot.path: sign * quantity}, "$set": {"updated_at": utcnow()}},
        session=session,
    )
    if result.matched_count == 0:
        if sign < 0:
            current = db["product"].find_one({"_id": product["_id"]}, session=session) or product
            fresh = find_stock_slot(current, size, color)
            available = fresh.available if fresh else 0
            raise HTTPException(
                status_code=400,
                detail=insufficient_stock_message(product, quantity, available, size, color),
            )
        logger.warning("Product %s changed shape, stock not reverted for %s", product["_id"], slot.path)
        return False
    logger.debug("Stock %s of product %s moved by %d", slot.path, product["_id"], sign * quantity)
    return True
