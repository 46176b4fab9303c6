"""MongoDB access helpers."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

client = MongoClient(DATABASE_URL, tz_aware=True)
db = client[DATABASE_NAME]


def oid(value: Optional[str]) -> Optional[ObjectId]:
    if value is None or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_str_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of ``doc`` with ``_id`` exposed as a string ``id`` and datetimes in UTC."""
    if doc is None:
        return None
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
        elif isinstance(v, datetime):
            d[k] = as_utc(v).isoformat()
    return d


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database: Optional[Database] = None) -> str:
    database = db if database is None else database
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)
    result = database[collection_name].insert_one(dict(data))
    return str(result.inserted_id)


def find_document(collection_name: str, query: Dict[str, Any], database: Optional[Database] = None) -> Optional[Dict[str, Any]]:
    database = db if database is None else database
    return database[collection_name].find_one(query)


def get_documents(
    collection_name: str,
    query: Optional[Dict[str, Any]] = None,
    order_by: Optional[str] = None,
    direction: int = DESCENDING,
    database: Optional[Database] = None,
) -> List[Dict[str, Any]]:
    database = db if database is None else database
    cursor = database[collection_name].find(query or {})
    if order_by:
        cursor = cursor.sort(order_by, direction)
    return list(cursor)


def update_document(collection_name: str, document_id: str, fields: Dict[str, Any], database: Optional[Database] = None) -> bool:
    """``$set`` the given fields; returns False when no document matched."""
    database = db if database is None else database
    _id = oid(document_id)
    if _id is None:
        return False
    result = database[collection_name].update_one({"_id": _id}, {"$set": fields})
    return result.matched_count > 0


def delete_documents(collection_name: str, query: Dict[str, Any], database: Optional[Database] = None) -> int:
    database = db if database is None else database
    return database[collection_name].delete_many(query).deleted_count
