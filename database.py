"""
MongoDB access for the storefront.

A single pooled `MongoClient` is created on first use. Connection bootstrap is
the only place that retries: a fixed number of attempts with linear backoff,
after which `DatabaseTimeout` is raised and the API answers 504.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config

logger = logging.getLogger(__name__)

# Cached handle. Tests assign a mongomock database here.
db: Optional[Database] = None
_client: Optional[MongoClient] = None


class DatabaseTimeout(Exception):
    """Raised when the database could not be reached after all retries."""

    def __init__(self, message: str = "DB timeout"):
        super().__init__(message)


def utcnow() -> datetime:
    # Stored timestamps are naive UTC, the way pymongo hands them back.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def connect(retries: Optional[int] = None, delay: Optional[float] = None) -> Database:
    global db, _client
    if not config.DATABASE_URL or not config.DATABASE_NAME:
        raise DatabaseTimeout("DB timeout")

    retries = retries if retries is not None else config.DB_CONNECT_RETRIES
    delay = delay if delay is not None else config.DB_RETRY_DELAY_SECONDS

    last_error: Optional[Exception] = None
    for attempt in range(1, max(1, retries) + 1):
        try:
            client = MongoClient(
                config.DATABASE_URL,
                maxPoolSize=10,
                serverSelectionTimeoutMS=config.DB_TIMEOUT_MS,
                connectTimeoutMS=config.DB_TIMEOUT_MS,
                retryWrites=True,
                retryReads=True,
            )
            client.admin.command("ping")
            _client = client
            db = client[config.DATABASE_NAME]
            logger.info("Connected to database %s", config.DATABASE_NAME)
            return db
        except PyMongoError as e:
            last_error = e
            logger.warning("Database connection attempt %d/%d failed: %s", attempt, retries, e)
            if attempt < retries:
                time.sleep(delay * attempt)

    logger.error("Database unreachable after %d attempts: %s", retries, last_error)
    raise DatabaseTimeout("DB timeout") from last_error


def get_db() -> Database:
    if db is not None:
        return db
    return connect()


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = get_db()[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = get_db()[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def close() -> None:
    global db, _client
    if _client is not None:
        _client.close()
    _client = None
    db = None
