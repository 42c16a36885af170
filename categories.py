"""
Category hierarchy

Two levels only: `main` categories (no parent) and `sub` categories whose
parent is a main category. Each category carries a unique slug and the list
of its ancestors ({id, name, slug}) for breadcrumb rendering.
"""
import logging
import re
from typing import Optional

from fastapi import HTTPException

from database import create_document, db, serialize_doc, to_object_id, utcnow
from schemas import CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def unique_slug(name: str, exclude_id=None) -> str:
    base = slugify(name)
    slug, counter = base, 1
    while True:
        clash = db["category"].find_one({"slug": slug})
        if not clash or clash["_id"] == exclude_id:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def get_category_doc(category_id: str, not_found: str = "Category not found") -> dict:
    category = db["category"].find_one({"_id": to_object_id(category_id, "category ID")})
    if not category:
        raise HTTPException(status_code=404, detail=not_found)
    return category


def _subcategories(category_id) -> list:
    return list(db["category"].find({"parent": str(category_id), "type": "sub"}).sort("name", 1))


def _resolve_parent(parent_id: str) -> dict:
    """Load a prospective parent; only main categories may have children."""
    parent = db["category"].find_one({"_id": to_object_id(parent_id, "parent category ID")})
    if not parent:
        raise HTTPException(status_code=404, detail="Parent category not found.")
    if parent.get("type") == "sub":
        raise HTTPException(
            status_code=400,
            detail="A subcategory cannot be a parent. Please select a main category as parent.",
        )
    return parent


def _hierarchy_fields(parent: Optional[dict]) -> dict:
    if parent is None:
        return {"parent": None, "ancestors": [], "type": "main"}
    ancestors = list(parent.get("ancestors") or []) + [
        {"id": str(parent["_id"]), "name": parent["name"], "slug": parent.get("slug")}
    ]
    return {"parent": str(parent["_id"]), "ancestors": ancestors, "type": "sub"}


def create_category(payload: CategoryCreate) -> dict:
    name = payload.name.strip()
    if db["category"].find_one({"name": name}):
        raise HTTPException(status_code=400, detail="Category name already exists")
    parent = _resolve_parent(payload.parent) if payload.parent else None
    data = {
        "name": name,
        "description": payload.description,
        "slug": unique_slug(name),
        **_hierarchy_fields(parent),
    }
    category_id = create_document("category", data)
    logger.info("Created %s category %s (%s)", data["type"], category_id, name)
    return serialize_doc(db["category"].find_one({"_id": to_object_id(category_id)}))


def list_categories() -> list:
    return [serialize_doc(c) for c in db["category"].find({}).sort("name", 1)]


def get_category(category_id: str) -> dict:
    return serialize_doc(get_category_doc(category_id))


def get_category_by_name(name: str) -> dict:
    category = db["category"].find_one({"name": name})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return serialize_doc(category)


def get_category_by_slug(slug: str) -> dict:
    category = db["category"].find_one({"slug": slug.lower()})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return serialize_doc(category)


def list_main_categories() -> list:
    return [serialize_doc(c) for c in db["category"].find({"parent": None, "type": "main"}).sort("name", 1)]


def list_subcategories(parent_id: str) -> list:
    parent = db["category"].find_one({"_id": to_object_id(parent_id, "parent category ID")})
    if not parent or parent.get("type") != "main":
        raise HTTPException(status_code=404, detail="Parent category not found or is not a main category.")
    return [serialize_doc(c) for c in _subcategories(parent["_id"])]


def update_category(category_id: str, payload: CategoryUpdate) -> dict:
    existing = get_category_doc(category_id)
    changes = payload.model_dump(exclude_unset=True)
    update = {}

    if changes.get("name") and changes["name"].strip() != existing["name"]:
        name = changes["name"].strip()
        clash = db["category"].find_one({"name": name})
        if clash and clash["_id"] != existing["_id"]:
            raise HTTPException(status_code=400, detail="Category name already exists")
        update["name"] = name
        update["slug"] = unique_slug(name, exclude_id=existing["_id"])

    if "description" in changes:
        update["description"] = changes["description"]

    if "parent" in changes:
        has_children = existing.get("type") == "main" and len(_subcategories(existing["_id"])) > 0
        if changes["parent"] is None:
            if has_children:
                raise HTTPException(
                    status_code=400,
                    detail="Cannot remove parent from a main category that has subcategories. "
                           "Re-parent its children first.",
                )
            update.update(_hierarchy_fields(None))
        else:
            if changes["parent"] == str(existing["_id"]):
                raise HTTPException(status_code=400, detail="A category cannot be its own parent.")
            parent = _resolve_parent(changes["parent"])
            if has_children:
                raise HTTPException(
                    status_code=400,
                    detail="Cannot assign a parent to a main category that has existing subcategories. "
                           "Re-parent its children first.",
                )
            update.update(_hierarchy_fields(parent))

    update["updated_at"] = utcnow()
    db["category"].update_one({"_id": existing["_id"]}, {"$set": update})
    return serialize_doc(db["category"].find_one({"_id": existing["_id"]}))


def delete_category(category_id: str) -> dict:
    existing = get_category_doc(category_id)
    if db["product"].count_documents({"category": str(existing["_id"])}) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete category with associated products. Please reassign or delete products first.",
        )
    if existing.get("type") == "main" and _subcategories(existing["_id"]):
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a main category that has subcategories. Delete subcategories first.",
        )
    db["category"].delete_one({"_id": existing["_id"]})
    logger.info("Deleted category %s", existing["_id"])
    return serialize_doc(existing)
