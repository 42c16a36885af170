import logging
from typing import List

from fastapi import HTTPException

from database import create_document, db, serialize_doc, to_object_id, utcnow
from products import get_product_doc, present
from schemas import Wishlist

logger = logging.getLogger(__name__)


def present_wishlist(wishlist: dict) -> dict:
    """Serialize a wishlist with the products it still points at."""
    out = serialize_doc(wishlist)
    ids = [to_object_id(pid, "product ID") for pid in wishlist.get("products", [])]
    found = {str(p["_id"]): present(p) for p in db["product"].find({"_id": {"$in": ids}})}
    out["products"] = [found[pid] for pid in wishlist.get("products", []) if pid in found]
    return out


def _find(user_id: str):
    to_object_id(user_id, "user ID")
    return db["wishlist"].find_one({"user_id": user_id})


def _require(user_id: str) -> dict:
    wishlist = _find(user_id)
    if not wishlist:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    return wishlist


def get_wishlist(user_id: str) -> dict:
    return present_wishlist(_require(user_id))


def get_or_create_wishlist(user_id: str, product_ids: List[str]) -> dict:
    for product_id in product_ids:
        get_product_doc(product_id)
    wishlist = _find(user_id)
    if not wishlist:
        unique = list(dict.fromkeys(product_ids))
        create_document("wishlist", Wishlist(user_id=user_id, products=unique))
        logger.info("Created wishlist for user %s", user_id)
    elif product_ids:
        db["wishlist"].update_one(
            {"_id": wishlist["_id"]},
            {"$addToSet": {"products": {"$each": product_ids}}, "$set": {"updated_at": utcnow()}},
        )
    return present_wishlist(_find(user_id))


def add_product(user_id: str, product_id: str) -> dict:
    get_product_doc(product_id)
    if not _find(user_id):
        return get_or_create_wishlist(user_id, [product_id])
    db["wishlist"].update_one(
        {"user_id": user_id},
        {"$addToSet": {"products": product_id}, "$set": {"updated_at": utcnow()}},
    )
    return present_wishlist(_find(user_id))


def remove_product(user_id: str, product_id: str) -> dict:
    wishlist = _require(user_id)
    db["wishlist"].update_one(
        {"_id": wishlist["_id"]},
        {"$pull": {"products": product_id}, "$set": {"updated_at": utcnow()}},
    )
    return present_wishlist(_find(user_id))


def delete_wishlist(user_id: str) -> dict:
    wishlist = _require(user_id)
    db["wishlist"].delete_one({"_id": wishlist["_id"]})
    return {"message": "Wishlist deleted successfully"}
