"""
MongoDB access for the admin ledger backend.

The connection is configured from DATABASE_URL and DATABASE_NAME. When either
is missing `db` stays None and every helper raises.
"""

import os
from datetime import datetime, timezone
from typing import Optional, Union

from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def get_db():
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def utcnow() -> datetime:
    """Current time as naive UTC, the form MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are taken as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document and return its id as a string"""
    database = get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = utcnow()
    if not data_dict.get("created_at"):
        data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: dict = None, limit: int = None, sort=None):
    """Fetch documents matching a filter"""
    database = get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes() -> None:
    database = get_db()
    database["admin"].create_index("admin_id", unique=True)
    database["game"].create_index("game_id", unique=True)
    database["game"].create_index([("bets.admin_id", ASCENDING), ("created_at", ASCENDING)])
    database["winningcard"].create_index([("game_id", ASCENDING), ("seq", ASCENDING)], unique=True)
    database["adminwinning"].create_index([("admin_id", ASCENDING), ("game_id", ASCENDING)])
    database["adminwinning"].create_index("created_at")
    database["admingameresult"].create_index([("game_id", ASCENDING), ("winners.admin_id", ASCENDING)])
    database["gamesettlement"].create_index("game_id", unique=True)
    logger.debug("MongoDB indexes ensured on {}", database.name)
