import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "ecommerce")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    client = MongoClient(DATABASE_URL, tz_aware=True)
    db = client[DATABASE_NAME]
else:
    logger.warning("DATABASE_URL not set, running without a database")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _resolve(database: Optional[Database]) -> Database:
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not configured")
    return target


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database: Optional[Database] = None) -> str:
    """Insert a document stamped with created_at/updated_at and return its id as a string."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = _resolve(database)[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None, database: Optional[Database] = None) -> List[Dict[str, Any]]:
    """Newest-first documents matching filter_dict."""
    cursor = _resolve(database)[collection_name].find(filter_dict or {}).sort("created_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_db() -> Database:
    """FastAPI dependency yielding the configured database."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db
