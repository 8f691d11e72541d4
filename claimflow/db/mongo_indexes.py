from motor.motor_asyncio import AsyncIOMotorDatabase
from claimflow.db.mongo import get_mongo_db


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create required MongoDB indexes (idempotent)."""
    if db is None:
        db = get_mongo_db()

    users = db["users"]
    # Unique index on email
    await users.create_index([("email", 1)], unique=True, name="uniq_email")
    await users.create_index([("role", 1), ("is_active", 1)], name="idx_role_active")
    # Supervisor lookups for row-level claim access
    await users.create_index([("assigned_supervisor1", 1)], name="idx_assigned_supervisor1")
    await users.create_index([("assigned_supervisor2", 1)], name="idx_assigned_supervisor2")

    claims = db["claims"]
    await claims.create_index([("claim_id", 1)], unique=True, name="uniq_claim_id")
    await claims.create_index([("employee_id", 1), ("created_at", -1)], name="idx_claim_employee_created")
    await claims.create_index([("status", 1), ("created_at", -1)], name="idx_claim_status_created")

    leaves = db["leaves"]
    await leaves.create_index([("leave_id", 1)], unique=True, name="uniq_leave_id")
    await leaves.create_index([("employee_id", 1), ("start_date", -1)], name="idx_leave_employee_start")
    await leaves.create_index([("status", 1), ("created_at", -1)], name="idx_leave_status_created")
    await leaves.create_index([("approval.approved_by", 1)], name="idx_leave_approved_by")
    await leaves.create_index([("start_date", 1), ("end_date", 1)], name="idx_leave_dates")
    await leaves.create_index([("type", 1)], name="idx_leave_type")

    refresh_tokens = db["refresh_tokens"]
    await refresh_tokens.create_index([("jti", 1)], unique=True, name="uniq_refresh_jti")
    await refresh_tokens.create_index([("user_id", 1)], name="idx_refresh_user")
    await refresh_tokens.create_index([("family", 1)], name="idx_refresh_family")
    # Expired refresh tokens are purged by MongoDB
    await refresh_tokens.create_index([("expires_at", 1)], expireAfterSeconds=0, name="ttl_refresh_expires")

    audit_logs = db["audit_logs"]
    await audit_logs.create_index([("user_id", 1)], name="idx_audit_user")
    await audit_logs.create_index([("action", 1)], name="idx_audit_action")
    await audit_logs.create_index([("resource", 1)], name="idx_audit_resource")
    await audit_logs.create_index([("created_at", -1)], name="idx_audit_created")
