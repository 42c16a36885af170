"""
MongoDB access

Collections are named after the lowercased schema name (User -> "user").
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL, tz_aware=True)
    db = client[config.DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive datetimes unless the client is tz-aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def create_document(collection_name: str, data: Union[BaseModel, dict], session=None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id"""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def to_object_id(id_str: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


@contextmanager
def transaction():
    """
    Yield a client session inside a started transaction.

    The transaction commits when the block exits normally and aborts on any
    exception. With MONGO_TRANSACTIONS disabled (standalone servers, tests)
    the block runs without a session and None is yielded.
    """
    if not config.MONGO_TRANSACTIONS:
        yield None
        return
    if client is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    with client.start_session() as session:
        with session.start_transaction():
            yield session
