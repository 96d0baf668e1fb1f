"""
Database helpers

One MongoClient is opened at startup and shared by every request. The
helpers below take the selected database as their first argument so the
handlers can be pointed at any pymongo-compatible database.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.results import InsertOneResult
from pymongo.server_api import ServerApi

USERS = "users"
ACCOUNTS = "accounts"
PRODUCTS = "products"
COLLECTIONS = (USERS, ACCOUNTS, PRODUCTS)

logger = logging.getLogger("gadgetverse.database")


class InvalidObjectId(ValueError):
    """Raised when a path parameter is not a valid document identifier."""


def connect(url: str, name: str) -> Tuple[MongoClient, Database]:
    """Open the client, make sure the server answers and bind the collections.

    Any failure here is a startup failure; it is logged and re-raised.
    """
    try:
        client = MongoClient(
            url,
            tz_aware=True,
            server_api=ServerApi("1", strict=True, deprecation_errors=True),
        )
        client.admin.command("ping")
        db = client[name]
        ensure_indexes(db)
    except Exception:
        logger.exception("Could not connect to MongoDB database %s", name)
        raise
    return client, db


def ensure_indexes(db: Database) -> None:
    # one account per email, regardless of concurrent registrations
    db[USERS].create_index([("email", ASCENDING)], unique=True)


def now() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: str) -> ObjectId:
    # only the 24 character hex form; bson would also take None or 12 raw bytes
    if not isinstance(value, str) or len(value) != 24:
        raise InvalidObjectId(value)
    try:
        return ObjectId(value)
    except InvalidId as exc:
        raise InvalidObjectId(value) from exc


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> InsertOneResult:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return db[collection_name].insert_one(dict(data))


def find_document(db: Database, collection_name: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return db[collection_name].find_one(filter_dict)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def delete_document(db: Database, collection_name: str, filter_dict: Dict[str, Any]) -> int:
    return db[collection_name].delete_one(filter_dict).deleted_count


def serialize_document(value: Any) -> Any:
    """Make a stored document JSON friendly (ObjectId -> hex, datetime -> ISO)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        # stored times are UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    return value
