from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from claimflow.db.mongo import get_mongo_db
from claimflow.core.rbac import require_roles
from claimflow.core.security import get_current_user
from claimflow.data.category_master import valid_categories
from claimflow.schemas.policy_schema import PolicyOut, PolicyUpdate
from claimflow.services.audit import create_audit_log
from claimflow.services.policy_validation import get_current_policy

router = APIRouter(prefix="/policy", tags=["policy"])


def _policy_out(policy: dict) -> dict:
    out = dict(policy)
    if out.get("updated_by"):
        out["updated_by"] = str(out["updated_by"])
    return out


@router.get("", response_model=PolicyOut)
async def get_policy(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return _policy_out(await get_current_policy(db))


@router.patch("", response_model=PolicyOut)
async def update_policy(payload: PolicyUpdate, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    require_roles(current_user, {"admin"})
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No policy fields to update")
    unknown = set(changes.get("claim_categories", [])) - set(valid_categories())
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown claim categories: {', '.join(sorted(unknown))}")
    if "allowed_file_types" in changes:
        changes["allowed_file_types"] = [t.lower().lstrip(".") for t in changes["allowed_file_types"]]
    changes.update({"updated_by": current_user["id"], "updated_at": datetime.utcnow()})
    await db["policies"].update_one({"_id": "current"}, {"$set": changes}, upsert=True)
    await create_audit_log(
        db, current_user["id"], "update", "policy", "current",
        {k: v for k, v in changes.items() if k not in {"updated_by", "updated_at"}},
    )
    return _policy_out(await get_current_policy(db))
