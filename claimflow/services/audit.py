import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError


logger = logging.getLogger("uvicorn.error")


async def create_audit_log(
    db: AsyncIOMotorDatabase,
    user_id: Any,
    action: str,
    resource: str,
    resource_id: Optional[Any] = None,
    details: Optional[dict] = None,
) -> None:
    """Record an administrative action. Failures are logged and swallowed."""
    try:
        await db["audit_logs"].insert_one({
            "user_id": ObjectId(str(user_id)) if ObjectId.is_valid(str(user_id)) else user_id,
            "action": action,
            "resource": resource,
            "resource_id": str(resource_id) if resource_id is not None else None,
            "details": details or {},
            "created_at": datetime.utcnow(),
        })
    except PyMongoError as e:
        logger.warning("Audit log write failed for %s %s: %s", action, resource, e)
