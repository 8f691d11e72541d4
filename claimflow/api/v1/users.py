from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from claimflow.db.mongo import get_mongo_db, to_object_id
from claimflow.core.rbac import can_access_user, require_roles
from claimflow.core.security import get_current_user, hash_password, public_user
from claimflow.schemas.auth_schema import MessageOut, UserOut
from claimflow.schemas.user_schema import EmployeeNameOut, ResetPasswordIn, SupervisorOut, UserIn, UserUpdate
from claimflow.services.audit import create_audit_log

router = APIRouter(prefix="/users", tags=["users"])


async def _supervisor_ref(db: AsyncIOMotorDatabase, value: Optional[str]) -> Optional[ObjectId]:
    if not value:
        return None
    oid = to_object_id(value, "Assigned supervisor not found")
    sup = await db["users"].find_one({"_id": oid, "is_active": True})
    if not sup or sup.get("role") not in {"supervisor", "finance_manager", "admin"}:
        raise HTTPException(status_code=400, detail="Assigned supervisor must be an active supervisor")
    return oid


@router.get("", response_model=list[UserOut])
async def list_users(
    role: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_roles(current_user, {"admin", "finance_manager", "supervisor"})
    q: dict = {}
    if role:
        q["role"] = role
    if is_active is not None:
        q["is_active"] = is_active
    if current_user["role"] == "supervisor":
        me = ObjectId(current_user["id"])
        q["$or"] = [{"assigned_supervisor1": me}, {"assigned_supervisor2": me}]
    return [public_user(u) async for u in db["users"].find(q).sort("name", 1)]


@router.get("/supervisors", response_model=list[SupervisorOut])
async def list_supervisors(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    cursor = db["users"].find({"role": "supervisor", "is_active": True}).sort("name", 1)
    return [
        {
            "id": str(u["_id"]),
            "name": u.get("name", ""),
            "email": u["email"],
            "supervisor_level": u.get("supervisor_level"),
            "department": u.get("department"),
        }
        async for u in cursor
    ]


@router.get("/employee-names", response_model=list[EmployeeNameOut])
async def list_employee_names(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    cursor = db["users"].find({"is_active": True}).sort("name", 1)
    return [
        {
            "id": str(u["_id"]),
            "name": u.get("name", ""),
            "email": u["email"],
            "department": u.get("department"),
            "role": u.get("role", "employee"),
        }
        async for u in cursor
    ]


@router.post("", response_model=UserOut, status_code=201)
async def create_user(payload: UserIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    require_roles(current_user, {"admin"})
    email = payload.email.lower()
    if await db["users"].find_one({"email": email}):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    now = datetime.utcnow()
    doc = {
        "name": payload.name,
        "email": email,
        "password_hash": hash_password(payload.password),
        "role": payload.role.value,
        "supervisor_level": payload.supervisor_level if payload.role.value == "supervisor" else None,
        "department": payload.department,
        "is_active": True,
        "assigned_supervisor1": await _supervisor_ref(db, payload.assigned_supervisor1),
        "assigned_supervisor2": await _supervisor_ref(db, payload.assigned_supervisor2),
        "last_login_at": None,
        "created_at": now,
        "updated_at": now,
    }
    res = await db["users"].insert_one(doc)
    doc["_id"] = res.inserted_id
    await create_audit_log(db, current_user["id"], "create", "user", res.inserted_id, {"email": email, "role": doc["role"]})
    return public_user(doc)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: str, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    if not can_access_user(current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    user = await db["users"].find_one({"_id": to_object_id(user_id, "User not found")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return public_user(user)


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    if not can_access_user(current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    oid = to_object_id(user_id, "User not found")
    user = await db["users"].find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    # Explicit null only clears supervisor assignments
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in {"assigned_supervisor1", "assigned_supervisor2"}
    }
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    # Only admins may change who someone is or reports to
    admin_fields = {"role", "supervisor_level", "assigned_supervisor1", "assigned_supervisor2", "email"}
    if current_user["role"] != "admin" and admin_fields & changes.keys():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can change these fields")
    if "email" in changes and changes["email"]:
        changes["email"] = changes["email"].lower()
        clash = await db["users"].find_one({"email": changes["email"], "_id": {"$ne": oid}})
        if clash:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    if "role" in changes and changes["role"] is not None:
        changes["role"] = changes["role"].value
    for key in ("assigned_supervisor1", "assigned_supervisor2"):
        if key in changes:
            changes[key] = await _supervisor_ref(db, changes[key])
    changes["updated_at"] = datetime.utcnow()
    await db["users"].update_one({"_id": oid}, {"$set": changes})
    updated = await db["users"].find_one({"_id": oid})
    return public_user(updated)


@router.patch("/{user_id}/deactivate", response_model=UserOut)
async def deactivate_user(user_id: str, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    require_roles(current_user, {"admin"})
    oid = to_object_id(user_id, "User not found")
    if str(oid) == current_user["id"]:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user = await db["users"].find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    now = datetime.utcnow()
    await db["users"].update_one({"_id": oid}, {"$set": {"is_active": False, "updated_at": now}})
    await db["refresh_tokens"].update_many({"user_id": oid}, {"$set": {"is_revoked": True, "revoked_at": now}})
    await create_audit_log(db, current_user["id"], "deactivate", "user", user_id)
    user.update({"is_active": False, "updated_at": now})
    return public_user(user)


@router.patch("/{user_id}/reset-password", response_model=MessageOut)
async def reset_password(
    user_id: str,
    payload: ResetPasswordIn,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_roles(current_user, {"admin"})
    oid = to_object_id(user_id, "User not found")
    now = datetime.utcnow()
    res = await db["users"].update_one(
        {"_id": oid},
        {"$set": {"password_hash": hash_password(payload.password), "updated_at": now}},
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    await db["refresh_tokens"].update_many({"user_id": oid}, {"$set": {"is_revoked": True, "revoked_at": now}})
    await create_audit_log(db, current_user["id"], "reset_password", "user", user_id)
    return {"message": "Password reset successfully"}
