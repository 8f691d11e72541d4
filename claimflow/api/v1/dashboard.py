from __future__ import annotations

from datetime import datetime

from bson import ObjectId
from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from claimflow.api.v1.claims import visible_claims_query
from claimflow.core.rbac import is_executive
from claimflow.core.security import get_current_user
from claimflow.db.mongo import get_mongo_db
from claimflow.schemas.dashboard_schema import DashboardSummary
from claimflow.services.stats import calculate_claim_stats, utc_today


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DashboardSummary)
async def dashboard_summary(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    me = ObjectId(current_user["id"])
    role = current_user["role"]
    executive = is_executive(current_user)

    q = await visible_claims_query(db, current_user)
    claims = [c async for c in db["claims"].find(q, {"status": 1, "grand_total": 1, "employee_id": 1})]

    to_approve = 0
    if role == "supervisor":
        to_approve += sum(1 for c in claims if c.get("status") == "submitted" and c.get("employee_id") != me)
    if role == "finance_manager":
        to_approve += await db["claims"].count_documents({"status": {"$in": ["submitted", "approved"]}, "employee_id": {"$ne": me}})
    if executive:
        to_approve += await db["claims"].count_documents({"status": "finance_approved"})
    to_pay = await db["claims"].count_documents({"status": "executive_approved"}) if role == "finance_manager" else 0
    leaves_pending = await db["leaves"].count_documents({"status": "submitted"}) if executive else 0

    today = utc_today()
    day = datetime(today.year, today.month, today.day)
    on_leave_today = await db["leaves"].count_documents({
        "status": "approved",
        "start_date": {"$lte": day},
        "end_date": {"$gte": day},
    })
    return DashboardSummary(
        role=role,
        is_executive=executive,
        claims=calculate_claim_stats(claims),
        pending={"claims_to_approve": to_approve, "claims_to_pay": to_pay, "leaves_to_approve": leaves_pending},
        leaves_on_leave_today=on_leave_today,
    )
