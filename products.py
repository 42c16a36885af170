import logging
import re
from typing import Optional

from fastapi import HTTPException

import pricing
from brands import get_brand_doc
from categories import get_category_doc
from database import create_document, db, serialize_doc, to_object_id, utcnow
from schemas import Comment, ProductCreate, ProductUpdate, Rating

logger = logging.getLogger(__name__)


def present(product: dict) -> dict:
    """Public view of a product with the derived percentage_off."""
    out = serialize_doc(product)
    out["percentage_off"] = pricing.percentage_off(product)
    return out


def get_product_doc(product_id: str, session=None) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "product ID")}, session=session)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _check_references(category: Optional[str], brand: Optional[str]):
    if category is not None:
        get_category_doc(category, not_found="Category does not exist.")
    if brand is not None:
        get_brand_doc(brand)


def _find(query: dict, sort_by: str = "created_at") -> list:
    return [present(p) for p in db["product"].find(query).sort(sort_by, -1)]


def create_product(payload: ProductCreate) -> dict:
    _check_references(payload.category, payload.brand)
    data = payload.model_dump(mode="json")
    data.update({"ratings": [], "average_rating": 0, "comments": []})
    product_id = create_document("product", data)
    logger.info("Created product %s (%s)", product_id, payload.name)
    return present(get_product_doc(product_id))


def list_products() -> list:
    return _find({})


def get_product(product_id: str) -> dict:
    return present(get_product_doc(product_id))


def update_product(product_id: str, payload: ProductUpdate) -> dict:
    existing = get_product_doc(product_id)
    update = payload.model_dump(mode="json", exclude_unset=True)
    _check_references(update.get("category"), update.get("brand"))
    merged = {**existing, **update}
    if merged.get("on_sale") and merged.get("sale_price") is None:
        raise HTTPException(status_code=400, detail="Sale price is required when product is on sale")
    update["updated_at"] = utcnow()
    db["product"].update_one({"_id": existing["_id"]}, {"$set": update})
    return present(db["product"].find_one({"_id": existing["_id"]}))


def delete_product(product_id: str) -> dict:
    existing = get_product_doc(product_id)
    db["product"].delete_one({"_id": existing["_id"]})
    logger.info("Deleted product %s", existing["_id"])
    return present(existing)


def products_by_category(category_id: str) -> list:
    to_object_id(category_id, "category ID")
    return _find({"category": category_id})


def products_by_brand(brand_id: str) -> list:
    to_object_id(brand_id, "brand ID")
    products = _find({"brand": brand_id})
    if not products:
        raise HTTPException(status_code=404, detail="No products found for this brand.")
    return products


def search_products(q: str) -> list:
    pattern = re.escape(q or "")
    return _find({
        "$or": [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    })


def recommendations(product_id: str) -> list:
    """Other products from the same category."""
    current = get_product_doc(product_id)
    return _find({"category": current.get("category"), "_id": {"$ne": current["_id"]}})


def new_arrivals() -> list:
    return _find({"is_new_arrival": True})


def on_sale() -> list:
    return _find({"on_sale": True})


def exclusive() -> list:
    return _find({"is_exclusive": True})


def coming_soon() -> list:
    return _find({"status": "coming_soon"})


# -----------------
# Ratings & comments
# -----------------

def add_rating(product_id: str, user_id: str, rating: int, comment: Optional[str] = None) -> dict:
    product = get_product_doc(product_id)
    entry = Rating(user_id=user_id, rating=rating, comment=comment).model_dump()
    ratings = list(product.get("ratings") or []) + [entry]
    average = sum(r["rating"] for r in ratings) / len(ratings)
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$push": {"ratings": entry}, "$set": {"average_rating": average, "updated_at": utcnow()}},
    )
    return present(db["product"].find_one({"_id": product["_id"]}))


def get_ratings(product_id: str) -> dict:
    product = get_product_doc(product_id)
    return {
        "id": str(product["_id"]),
        "ratings": product.get("ratings") or [],
        "average_rating": product.get("average_rating", 0),
    }


def add_comment(product_id: str, user_id: str, text: str) -> dict:
    if not text or not text.strip():
        raise HTTPException(status_code=400, detail="Comment text cannot be empty")
    product = get_product_doc(product_id)
    entry = Comment(user_id=user_id, text=text.strip(), timestamp=utcnow()).model_dump()
    db["product"].update_one({"_id": product["_id"]}, {"$push": {"comments": entry}})
    return present(db["product"].find_one({"_id": product["_id"]}))


def get_comments(product_id: str) -> dict:
    product = get_product_doc(product_id)
    return {"id": str(product["_id"]), "comments": product.get("comments") or []}
