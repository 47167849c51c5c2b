"""
MongoDB access for the storefront.

A single ``Database`` is built when the app starts, shared by every request
through the ``get_db`` dependency and closed on shutdown.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, client: MongoClient, name: str):
        self.client = client
        self.name = name
        self._db = client[name]

    @classmethod
    def from_env(cls) -> Optional["Database"]:
        if not config.DATABASE_URL:
            logger.warning("DATABASE_URL is not set, starting without a database")
            return None
        client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
        logger.info("Connected to MongoDB database %s", config.DATABASE_NAME)
        return cls(client, config.DATABASE_NAME)

    def __getitem__(self, name: str):
        return self._db[name]

    def collection(self, name: str):
        return self._db[name]

    def ping(self) -> bool:
        self.client.admin.command("ping")
        return True

    def list_collection_names(self) -> List[str]:
        return self._db.list_collection_names()

    def close(self):
        self.client.close()

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        if isinstance(data, BaseModel):
            doc = data.model_dump()
        else:
            doc = dict(data)
        now = datetime.now(timezone.utc)
        doc.setdefault("createdAt", now)
        doc["updatedAt"] = now
        return str(self._db[collection_name].insert_one(doc).inserted_id)

    def get_documents(self, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None):
        cursor = self._db[collection_name].find(filter_dict or {})
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def get_optional_db(request: Request) -> Optional[Database]:
    return getattr(request.app.state, "db", None)


def to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def serialize_doc(doc: Any) -> Any:
    """Make a stored document JSON friendly.

    ObjectIds become strings and datetimes ISO strings, recursively. The
    document id is exposed both as ``_id`` and ``id``.
    """
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, dict):
        d: Dict[str, Any] = {k: serialize_doc(v) for k, v in doc.items()}
        if "_id" in d and "id" not in d:
            d["id"] = d["_id"]
        return d
    return doc
