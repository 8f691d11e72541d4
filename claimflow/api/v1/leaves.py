from datetime import datetime, date as _date
from math import ceil
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from claimflow.db.mongo import get_mongo_db, to_object_id
from claimflow.db.counters import next_leave_id
from claimflow.core.rbac import is_executive, require_executive
from claimflow.core.security import get_current_user
from claimflow.schemas.auth_schema import MessageOut
from claimflow.schemas.common import LeaveType
from claimflow.schemas.leave_schema import (
    BulkLeaveIn,
    BulkLeaveOut,
    LeaveAnalyticsOut,
    LeaveDecisionIn,
    LeaveIn,
    LeaveListOut,
    LeaveMessageOut,
    LeaveOut,
    LeaveUpdate,
    RangeLeavesOut,
    TodayLeavesOut,
)
from claimflow.services.audit import create_audit_log
from claimflow.services.stats import duration_in_days, leave_org_summary, leave_year_summary, utc_today
from claimflow.utils.email import send_leave_status_email

router = APIRouter(prefix="/leaves", tags=["leaves"])


def _as_datetime(d: _date) -> datetime:
    return datetime(d.year, d.month, d.day)


def _brief(employee: Optional[dict], fallback_id=None) -> dict:
    employee = employee or {}
    return {
        "id": str(employee.get("_id") or fallback_id),
        "name": employee.get("name", ""),
        "email": employee.get("email", ""),
        "department": employee.get("department"),
    }


def leave_out(doc: dict, employee: Optional[dict] = None) -> dict:
    approval = doc.get("approval")
    if approval:
        approval = {**approval, "approved_by": str(approval["approved_by"]) if approval.get("approved_by") else None}
    return {
        "id": str(doc["_id"]),
        "leave_id": doc.get("leave_id", ""),
        "employee": _brief(employee, doc.get("employee_id")),
        "type": doc.get("type"),
        "start_date": doc["start_date"].date() if isinstance(doc["start_date"], datetime) else doc["start_date"],
        "end_date": doc["end_date"].date() if isinstance(doc["end_date"], datetime) else doc["end_date"],
        "is_full_day": doc.get("is_full_day", True),
        "hours": doc.get("hours"),
        "reason": doc.get("reason", ""),
        "timezone": doc.get("timezone", "Asia/Kolkata"),
        "status": doc.get("status", "submitted"),
        "approval": approval,
        "duration_in_days": duration_in_days(doc),
        "created_at": doc.get("created_at", datetime.utcnow()),
        "updated_at": doc.get("updated_at", datetime.utcnow()),
    }


async def _employees_by_id(db: AsyncIOMotorDatabase, ids) -> dict[str, dict]:
    ids = list({i for i in ids if i})
    if not ids:
        return {}
    return {str(u["_id"]): u async for u in db["users"].find({"_id": {"$in": ids}})}


async def _with_employees(db: AsyncIOMotorDatabase, docs: list[dict]) -> list[dict]:
    employees = await _employees_by_id(db, [d.get("employee_id") for d in docs])
    return [leave_out(d, employees.get(str(d.get("employee_id")))) for d in docs]


async def _find_overlap(db: AsyncIOMotorDatabase, employee_id: ObjectId, start: datetime, end: datetime, exclude=None):
    q = {
        "employee_id": employee_id,
        "status": {"$ne": "rejected"},
        "start_date": {"$lte": end},
        "end_date": {"$gte": start},
    }
    if exclude is not None:
        q["_id"] = {"$ne": exclude}
    return await db["leaves"].find_one(q)


def _leave_doc(payload: LeaveIn, employee_id: ObjectId, leave_id: str, created_by: ObjectId) -> dict:
    now = datetime.utcnow()
    return {
        "leave_id": leave_id,
        "employee_id": employee_id,
        "type": payload.type.value,
        "start_date": _as_datetime(payload.start_date),
        "end_date": _as_datetime(payload.end_date),
        "is_full_day": payload.type != LeaveType.permission,
        "hours": payload.hours,
        "reason": payload.reason or "",
        "timezone": payload.timezone,
        "status": "submitted",
        "approval": None,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }


async def _load_leave(db: AsyncIOMotorDatabase, leave_id: str) -> dict:
    doc = await db["leaves"].find_one({"_id": to_object_id(leave_id, "Leave not found")})
    if not doc:
        raise HTTPException(status_code=404, detail="Leave not found")
    return doc


@router.get("", response_model=LeaveListOut)
async def list_leaves(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_: Optional[str] = Query(None, alias="status"),
    type_: Optional[LeaveType] = Query(None, alias="type"),
    employee_id: Optional[str] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    privileged = is_executive(current_user) or current_user["role"] == "admin"
    if employee_id and not privileged and employee_id != current_user["id"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    target = to_object_id(employee_id, "Employee not found") if employee_id else ObjectId(current_user["id"])
    q: dict = {}
    if employee_id or not privileged:
        q["employee_id"] = target
    if status_:
        q["status"] = status_
    if type_:
        q["type"] = type_.value
    if year:
        q["start_date"] = {"$gte": datetime(year, 1, 1), "$lt": datetime(year + 1, 1, 1)}

    total = await db["leaves"].count_documents(q)
    cursor = db["leaves"].find(q).sort("start_date", -1).skip((page - 1) * limit).limit(limit)
    leaves = await _with_employees(db, [d async for d in cursor])

    summary = None
    if "employee_id" in q:
        y = year or datetime.utcnow().year
        year_docs = [
            d async for d in db["leaves"].find({
                "employee_id": q["employee_id"],
                "start_date": {"$gte": datetime(y, 1, 1), "$lt": datetime(y + 1, 1, 1)},
            })
        ]
        summary = leave_year_summary(year_docs)
    return {
        "leaves": leaves,
        "pagination": {"total": total, "page": page, "limit": limit, "pages": ceil(total / limit) if total else 0},
        "year_summary": summary,
    }


@router.post("", response_model=LeaveMessageOut, status_code=201)
async def create_leave(payload: LeaveIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    me = ObjectId(current_user["id"])
    if await _find_overlap(db, me, _as_datetime(payload.start_date), _as_datetime(payload.end_date)):
        raise HTTPException(status_code=400, detail="You already have a leave request overlapping these dates")
    doc = _leave_doc(payload, me, await next_leave_id(db), me)
    res = await db["leaves"].insert_one(doc)
    doc["_id"] = res.inserted_id
    employee = await db["users"].find_one({"_id": me})
    return {"message": "Leave request submitted successfully", "leave": leave_out(doc, employee)}


@router.get("/pending", response_model=list[LeaveOut])
async def pending_leaves(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    require_executive(current_user, "Only executives can review leave requests")
    docs = [d async for d in db["leaves"].find({"status": "submitted"}).sort("created_at", 1)]
    return await _with_employees(db, docs)


@router.get("/analytics", response_model=LeaveAnalyticsOut)
async def leave_analytics(
    period: Literal["month", "year"] = Query("year"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_executive(current_user, "Only executives can view leave analytics")
    today = datetime.utcnow()
    year = year or today.year
    if period == "month":
        month = month or today.month
        start = datetime(year, month, 1)
        end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
        label = f"{year}-{month:02d}"
    else:
        start, end = datetime(year, 1, 1), datetime(year + 1, 1, 1)
        label = str(year)
    leaves = [d async for d in db["leaves"].find({"start_date": {"$gte": start, "$lt": end}})]
    employees = [u async for u in db["users"].find({"is_active": True})]
    return {"period": label, "summary": leave_org_summary(leaves, employees)}


@router.get("/today", response_model=TodayLeavesOut)
async def leaves_today(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    today = utc_today()
    day = _as_datetime(today)
    docs = [
        d async for d in db["leaves"].find({
            "status": "approved",
            "start_date": {"$lte": day},
            "end_date": {"$gte": day},
        })
    ]
    employees = await _employees_by_id(db, [d.get("employee_id") for d in docs])
    return {
        "date": today,
        "employees": [
            {
                "employee": _brief(employees.get(str(d["employee_id"])), d["employee_id"]),
                "leave_type": d["type"],
                "reason": d.get("reason", ""),
                "is_full_day": d.get("is_full_day", True),
                "hours": d.get("hours"),
            }
            for d in docs
        ],
    }


@router.get("/range", response_model=RangeLeavesOut)
async def leaves_in_range(
    start_date: _date = Query(...),
    end_date: _date = Query(...),
    status_: Optional[str] = Query("approved", alias="status"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="End date cannot be before start date")
    q: dict = {"start_date": {"$lte": _as_datetime(end_date)}, "end_date": {"$gte": _as_datetime(start_date)}}
    if status_:
        q["status"] = status_
    docs = [d async for d in db["leaves"].find(q).sort("start_date", 1)]
    return {"start_date": start_date, "end_date": end_date, "leaves": await _with_employees(db, docs)}


@router.post("/bulk", response_model=BulkLeaveOut)
async def bulk_upload_leaves(payload: BulkLeaveIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    """Create approved leaves for many employees at once, reporting each row."""
    require_executive(current_user, "Only executives can bulk upload leaves")
    approver = ObjectId(current_user["id"])
    results = []
    for row in payload.leaves:
        email = (row.employee_email or "").strip().lower()
        if not email or not row.leave_type or not row.start_date or not row.end_date:
            results.append({"employee_email": email, "success": False, "error": "Missing required fields"})
            continue
        employee = await db["users"].find_one({"email": email, "is_active": True})
        if not employee:
            results.append({"employee_email": email, "success": False, "error": "Employee not found"})
            continue
        try:
            leave = LeaveIn(
                type=row.leave_type,
                start_date=row.start_date,
                end_date=row.end_date,
                hours=row.hours,
                reason=row.reason or "",
            )
        except ValidationError as e:
            first = e.errors()[0]
            results.append({"employee_email": email, "success": False, "error": first.get("msg", "Invalid row")})
            continue
        if await _find_overlap(db, employee["_id"], _as_datetime(leave.start_date), _as_datetime(leave.end_date)):
            results.append({"employee_email": email, "success": False, "error": "Overlapping leave already exists"})
            continue
        doc = _leave_doc(leave, employee["_id"], await next_leave_id(db), approver)
        doc["status"] = "approved"
        doc["approval"] = {
            "approved_by": approver,
            "approved_at": datetime.utcnow(),
            "notes": "Bulk upload",
            "rejection_reason": "",
        }
        await db["leaves"].insert_one(doc)
        results.append({"employee_email": email, "success": True, "leave_id": doc["leave_id"]})

    successful = sum(1 for r in results if r["success"])
    await create_audit_log(db, current_user["id"], "bulk_upload", "leave", None, {"total": len(results), "successful": successful})
    return {
        "message": f"Bulk upload completed: {successful} successful, {len(results) - successful} failed",
        "summary": {"total": len(results), "successful": successful, "failed": len(results) - successful},
        "results": results,
    }


@router.patch("/{leave_id}", response_model=LeaveMessageOut)
async def update_leave(
    leave_id: str,
    payload: LeaveUpdate,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    doc = await _load_leave(db, leave_id)
    owner = str(doc["employee_id"]) == current_user["id"]
    if not (owner or is_executive(current_user)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if owner and not is_executive(current_user) and doc.get("status") != "submitted":
        raise HTTPException(status_code=400, detail="Only pending leave requests can be edited")
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    merged = {
        "type": doc["type"],
        "start_date": doc["start_date"].date(),
        "end_date": doc["end_date"].date(),
        "hours": doc.get("hours"),
        "reason": doc.get("reason", ""),
        "timezone": doc.get("timezone", "Asia/Kolkata"),
        **changes,
    }
    try:
        leave = LeaveIn(**merged)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0].get("msg", "Invalid leave")) from e
    if await _find_overlap(db, doc["employee_id"], _as_datetime(leave.start_date), _as_datetime(leave.end_date), exclude=doc["_id"]):
        raise HTTPException(status_code=400, detail="Leave overlaps another request")
    updates = {
        "type": leave.type.value,
        "start_date": _as_datetime(leave.start_date),
        "end_date": _as_datetime(leave.end_date),
        "is_full_day": leave.type != LeaveType.permission,
        "hours": leave.hours,
        "reason": leave.reason or "",
        "timezone": leave.timezone,
        "updated_at": datetime.utcnow(),
    }
    await db["leaves"].update_one({"_id": doc["_id"]}, {"$set": updates})
    updated = await db["leaves"].find_one({"_id": doc["_id"]})
    employee = await db["users"].find_one({"_id": doc["employee_id"]})
    return {"message": "Leave updated successfully", "leave": leave_out(updated, employee)}


@router.delete("/{leave_id}", response_model=MessageOut)
async def delete_leave(leave_id: str, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    doc = await _load_leave(db, leave_id)
    owner = str(doc["employee_id"]) == current_user["id"]
    privileged = is_executive(current_user) or current_user["role"] == "admin"
    if not (owner or privileged):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if not privileged and doc.get("status") != "submitted":
        raise HTTPException(status_code=400, detail="Only pending leave requests can be cancelled")
    await db["leaves"].delete_one({"_id": doc["_id"]})
    return {"message": "Leave deleted successfully"}


@router.post("/{leave_id}/approve", response_model=LeaveMessageOut)
async def decide_leave(
    leave_id: str,
    payload: LeaveDecisionIn,
    background: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_executive(current_user, "Only executives can approve leave requests")
    doc = await _load_leave(db, leave_id)
    if doc.get("status") != "submitted":
        raise HTTPException(status_code=400, detail=f"Leave request is already {doc.get('status')}")
    if payload.action == "reject" and not (payload.rejection_reason or "").strip():
        raise HTTPException(status_code=400, detail="Rejection reason is required")
    now = datetime.utcnow()
    new_status = "approved" if payload.action == "approve" else "rejected"
    await db["leaves"].update_one(
        {"_id": doc["_id"]},
        {"$set": {
            "status": new_status,
            "approval": {
                "approved_by": ObjectId(current_user["id"]),
                "approved_at": now,
                "notes": payload.notes or "",
                "rejection_reason": payload.rejection_reason or "" if payload.action == "reject" else "",
            },
            "updated_at": now,
        }},
    )
    updated = await db["leaves"].find_one({"_id": doc["_id"]})
    employee = await db["users"].find_one({"_id": doc["employee_id"]})
    if employee and employee.get("email"):
        background.add_task(
            send_leave_status_email,
            to=employee["email"],
            employee_name=employee.get("name", ""),
            leave_id=doc.get("leave_id", ""),
            leave_type=doc.get("type", ""),
            status=new_status,
            reason=payload.rejection_reason if payload.action == "reject" else None,
        )
    return {"message": f"Leave {new_status} successfully", "leave": leave_out(updated, employee)}
