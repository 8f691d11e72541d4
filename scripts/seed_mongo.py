from __future__ import annotations

import asyncio
from datetime import datetime

from bson import ObjectId

from claimflow.db.mongo import get_mongo_db, close_mongo_client
from claimflow.db.mongo_indexes import ensure_indexes
from claimflow.db.counters import COUNTER_START
from claimflow.core.security import hash_password
from claimflow.data.policy_defaults import default_policy


# Stable ids keep the seed idempotent and let supervisors be referenced below
ADMIN_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a1")
FINANCE_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a2")
SUPERVISOR1_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a3")
SUPERVISOR2_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a4")
EMPLOYEE_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a5")
CEO_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a6")
CTO_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a7")


def _user(_id, name, email, password, role, department, supervisor_level=None, supervisors=(None, None)):
    now = datetime.utcnow()
    return {
        "_id": _id,
        "name": name,
        "email": email,
        "password_hash": hash_password(password),
        "role": role,
        "supervisor_level": supervisor_level,
        "department": department,
        "is_active": True,
        "assigned_supervisor1": supervisors[0],
        "assigned_supervisor2": supervisors[1],
        "last_login_at": None,
        "created_at": now,
        "updated_at": now,
    }


async def seed_users(db):
    users = [
        _user(ADMIN_ID, "Admin User", "admin@claimflow.io", "admin12345", "admin", "Administration"),
        _user(FINANCE_ID, "Fiona Finance", "finance@claimflow.io", "finance12345", "finance_manager", "Finance"),
        _user(SUPERVISOR1_ID, "Sam Supervisor", "sam@claimflow.io", "super12345", "supervisor", "Engineering", 1),
        _user(SUPERVISOR2_ID, "Sara Lead", "sara@claimflow.io", "super12345", "supervisor", "Engineering", 2),
        _user(
            EMPLOYEE_ID, "Asha Employee", "asha@claimflow.io", "employee12345", "employee", "Engineering",
            supervisors=(SUPERVISOR1_ID, SUPERVISOR2_ID),
        ),
        _user(CEO_ID, "Chief Executive", "ceo@claimflow.io", "exec12345", "admin", "Leadership"),
        _user(CTO_ID, "Chief Technology", "cto@claimflow.io", "exec12345", "admin", "Leadership"),
    ]
    for u in users:
        await db["users"].update_one({"email": u["email"]}, {"$setOnInsert": u}, upsert=True)
    return users


async def seed_policy(db):
    policy = default_policy()
    policy.update({"updated_by": str(ADMIN_ID), "updated_at": datetime.utcnow()})
    await db["policies"].update_one({"_id": "current"}, {"$setOnInsert": policy}, upsert=True)


async def seed_counters(db):
    for name, start in COUNTER_START.items():
        await db["counters"].update_one({"_id": name}, {"$setOnInsert": {"seq": start}}, upsert=True)


async def main():
    db = get_mongo_db()
    await ensure_indexes(db)

    await seed_users(db)
    await seed_policy(db)
    await seed_counters(db)

    print("MongoDB seed completed.")
    close_mongo_client()


if __name__ == "__main__":
    asyncio.run(main())
