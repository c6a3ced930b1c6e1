"""
MongoDB access for the publishing service.

`db` is the process-wide database handle built from DATABASE_URL /
DATABASE_NAME. Helpers accept an explicit `database` so request handlers
and tests can run against an injected handle.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import get_settings

_settings = get_settings()
_client: Optional[MongoClient] = None
db: Optional[Database] = None

if _settings.database_url and _settings.database_name:
    _client = MongoClient(_settings.database_url)
    db = _client[_settings.database_name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _resolve(database: Optional[Database]) -> Database:
    handle = database if database is not None else db
    if handle is None:
        raise RuntimeError("Database not available. Set DATABASE_URL and DATABASE_NAME.")
    return handle


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except Exception:
        return None


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    payload.setdefault("created_at", now)
    payload["updated_at"] = now
    result = _resolve(database)[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None,
                  database: Optional[Database] = None) -> List[dict]:
    cursor = _resolve(database)[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Optional[Database] = None) -> None:
    handle = _resolve(database)
    sites = handle["site"]
    active = {"is_active": True}
    sites.create_index(
        [("subdomain", ASCENDING)],
        unique=True,
        partialFilterExpression=active,
        name="active_subdomain_unique",
    )
    sites.create_index(
        [("user_id", ASCENDING), ("portfolio_id", ASCENDING)],
        unique=True,
        partialFilterExpression=active,
        name="active_portfolio_site_unique",
    )
    handle["casestudy"].create_index([("portfolio_id", ASCENDING), ("project_id", ASCENDING)])
    handle["session"].create_index([("token", ASCENDING)], unique=True)
