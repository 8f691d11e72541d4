from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument


# Leave ids continued from the previous system's numbering
COUNTER_START = {"leaveId": 286, "claimId": 0}


async def next_sequence(db: AsyncIOMotorDatabase, counter: str) -> int:
    """Atomically increment and return the named counter."""
    await db["counters"].update_one(
        {"_id": counter},
        {"$setOnInsert": {"seq": COUNTER_START.get(counter, 0)}},
        upsert=True,
    )
    doc = await db["counters"].find_one_and_update(
        {"_id": counter},
        {"$inc": {"seq": 1}},
        return_document=ReturnDocument.AFTER,
        upsert=True,
    )
    if not doc or doc.get("seq") is None:
        raise RuntimeError(f"Counter {counter} returned no sequence")
    return int(doc["seq"])


async def next_leave_id(db: AsyncIOMotorDatabase) -> str:
    seq = await next_sequence(db, "leaveId")
    return f"leave_{datetime.utcnow().year}_{seq:05d}"


async def next_claim_id(db: AsyncIOMotorDatabase) -> str:
    seq = await next_sequence(db, "claimId")
    return f"claim_{datetime.utcnow().year}_{seq:05d}"
