"""
MongoDB access helpers.

The database handle is created once at startup and kept on ``app.state``;
routes receive it through the ``get_db`` dependency.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from bson.objectid import ObjectId
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)


def connect(database_url: str, database_name: str) -> Database:
    """Open the client and ping the server. Any failure propagates."""
    client = MongoClient(database_url, tz_aware=True)
    client.admin.command("ping")
    logger.info("Connected to MongoDB database %r", database_name)
    return client[database_name]


def get_db(request: Request) -> Database:
    return request.app.state.db


def now():
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data) -> str:
    """Insert a pydantic model or dict, stamping createdAt/updatedAt."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now()
    doc.setdefault("createdAt", stamp)
    doc.setdefault("updatedAt", stamp)
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def parse_object_id(value: str, what: str = "id") -> ObjectId:
    if not value or not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {what}")
    return ObjectId(value)


def serialize_doc(doc: Optional[dict]):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc
