from datetime import date, datetime
from typing import Optional

import certifi
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from claimflow.core.config import settings


_mongo_client: Optional[AsyncIOMotorClient] = None


def get_mongo_client() -> AsyncIOMotorClient:
    global _mongo_client
    if _mongo_client is None:
        client_kwargs = {"serverSelectionTimeoutMS": 30000}
        # certifi CA bundle for Atlas; a CA file switches TLS on, so local URIs go without
        if settings.MONGODB_URI.startswith("mongodb+srv://") or "tls=true" in settings.MONGODB_URI:
            client_kwargs["tlsCAFile"] = certifi.where()
        _mongo_client = AsyncIOMotorClient(settings.MONGODB_URI, **client_kwargs)
    return _mongo_client


def get_mongo_db() -> AsyncIOMotorDatabase:
    client = get_mongo_client()
    return client[settings.MONGODB_DB_NAME]


def close_mongo_client() -> None:
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None


def to_object_id(value: str, detail: str = "Not found") -> ObjectId:
    """Parse a path id; malformed ids are reported as missing resources."""
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise HTTPException(status_code=404, detail=detail) from exc


# Fields declared as calendar dates in the API models
DATE_FIELDS = {"date", "start_date", "end_date", "check_in", "check_out", "from_date", "to_date"}


def to_mongo_dates(value):
    """BSON has no date-only type; store calendar dates as midnight datetimes."""
    if isinstance(value, dict):
        return {k: to_mongo_dates(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_mongo_dates(v) for v in value]
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    return value


def restore_dates(value):
    if isinstance(value, dict):
        return {
            k: v.date() if k in DATE_FIELDS and isinstance(v, datetime) else restore_dates(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [restore_dates(v) for v in value]
    return value
