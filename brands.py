import logging
import re

from fastapi import HTTPException

from database import create_document, db, serialize_doc, to_object_id, utcnow
from schemas import BrandCreate, BrandUpdate

logger = logging.getLogger(__name__)


def get_brand_doc(brand_id: str) -> dict:
    brand = db["brand"].find_one({"_id": to_object_id(brand_id, "brand ID")})
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")
    return brand


def create_brand(payload: BrandCreate) -> dict:
    data = payload.model_dump(mode="json")
    data["name"] = data["name"].strip()
    if db["brand"].find_one({"name": data["name"]}):
        raise HTTPException(status_code=400, detail="Brand name already exists")
    brand_id = create_document("brand", data)
    return serialize_doc(db["brand"].find_one({"_id": to_object_id(brand_id)}))


def list_brands() -> list:
    return [serialize_doc(b) for b in db["brand"].find({}).sort("name", 1)]


def get_brand(brand_id: str) -> dict:
    return serialize_doc(get_brand_doc(brand_id))


def get_brand_by_name(name: str) -> dict:
    if not name.strip():
        raise HTTPException(status_code=400, detail="Brand name is required")
    brand = db["brand"].find_one({"name": name})
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")
    return serialize_doc(brand)


def update_brand(brand_id: str, payload: BrandUpdate) -> dict:
    existing = get_brand_doc(brand_id)
    update = payload.model_dump(mode="json", exclude_unset=True)
    if update.get("name"):
        update["name"] = update["name"].strip()
        # Case-insensitive check
        if update["name"].lower() != existing["name"].lower():
            pattern = f"^{re.escape(update['name'])}$"
            clash = db["brand"].find_one({"name": {"$regex": pattern, "$options": "i"}})
            if clash and clash["_id"] != existing["_id"]:
                raise HTTPException(status_code=400, detail="Brand name already exists")
    update["updated_at"] = utcnow()
    db["brand"].update_one({"_id": existing["_id"]}, {"$set": update})
    return serialize_doc(db["brand"].find_one({"_id": existing["_id"]}))


def delete_brand(brand_id: str) -> dict:
    existing = get_brand_doc(brand_id)
    if db["product"].count_documents({"brand": str(existing["_id"])}) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete brand with associated products. Please reassign or delete products first.",
        )
    db["brand"].delete_one({"_id": existing["_id"]})
    logger.info("Deleted brand %s", existing["_id"])
    return serialize_doc(existing)
