"""
Database connection and helpers

Reads DATABASE_URL and DATABASE_NAME from the environment (or a local .env)
and exposes a module-level `db` handle. `db` stays None when the variables are
missing so the API can still boot and report its status on /test.
"""
import os
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from bson.decimal128 import Decimal128
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def encode_decimals(value):
    """Convert Decimal values (recursively) to BSON Decimal128 and enums to their values."""
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: encode_decimals(v) for k, v in value.items()}
    if isinstance(value, list):
        return [encode_decimals(v) for v in value]
    return value


def decode_decimals(value):
    """Inverse of encode_decimals, applied to documents read back from MongoDB."""
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: decode_decimals(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_decimals(v) for v in value]
    return value


def to_str_id(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = decode_decimals(dict(doc))
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    target = database if database is not None else db
    if target is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump(mode="python")
    else:
        data_dict = data.copy()

    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = target[collection_name].insert_one(encode_decimals(data_dict))
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: dict = None, limit: int = None, database=None):
    target = database if database is not None else db
    if target is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return [decode_decimals(d) for d in cursor]
