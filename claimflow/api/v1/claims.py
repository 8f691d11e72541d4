from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile, status
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from claimflow.db.mongo import get_mongo_db, restore_dates, to_mongo_dates, to_object_id
from claimflow.db.counters import next_claim_id
from claimflow.core.rbac import (
    can_approve_claim,
    can_delete_claim,
    can_edit_claim,
    can_mark_paid,
    can_view_claim,
    is_executive,
    require_executive,
)
from claimflow.core.security import get_current_user
from claimflow.data.category_master import get_head_bucket
from claimflow.schemas.auth_schema import MessageOut
from claimflow.schemas.claim_schema import (
    ApprovalIn,
    ClaimIn,
    ClaimListOut,
    ClaimOut,
    ClaimStatsOut,
    ClaimUpdate,
    PaymentIn,
)
from claimflow.services.audit import create_audit_log
from claimflow.services.claim_workflow import WorkflowError, apply_decision, mark_paid
from claimflow.services.currency import CurrencyConverter, get_currency_converter
from claimflow.services.policy_validation import (
    compute_claim_totals,
    get_current_policy,
    required_documents_for,
    validate_against_policy,
    validate_file_upload,
)
from claimflow.services.stats import status_breakdown
from claimflow.services.storage import delete_upload, save_upload
from claimflow.utils.email import send_claim_status_email

router = APIRouter(prefix="/claims", tags=["claims"])


def claim_out(doc: dict, employee: Optional[dict] = None) -> dict:
    def _sid(v):
        return str(v) if v else None

    def _stage(value):
        if not value:
            return None
        return {**value, "approved_by": _sid(value.get("approved_by"))}

    employee = employee or {}
    payment = doc.get("payment")
    return {
        "id": str(doc["_id"]),
        "claim_id": doc.get("claim_id", ""),
        "employee": {
            "id": str(doc.get("employee_id")),
            "name": employee.get("name", ""),
            "email": employee.get("email", ""),
        },
        "category": doc.get("category", ""),
        "business_unit": doc.get("business_unit", ""),
        "trip": restore_dates(doc.get("trip")),
        "line_items": restore_dates(doc.get("line_items", [])),
        "advances": restore_dates(doc.get("advances", [])),
        "grand_total": doc.get("grand_total", 0),
        "advances_total": doc.get("advances_total", 0),
        "net_payable": doc.get("net_payable", 0),
        "totals_by_head": doc.get("totals_by_head", {}),
        "status": doc.get("status", "submitted"),
        "violations": doc.get("violations", []),
        "supervisor_approval": _stage(doc.get("supervisor_approval")),
        "finance_approval": _stage(doc.get("finance_approval")),
        "executive_approval": _stage(doc.get("executive_approval")),
        "payment": {**payment, "paid_by": _sid(payment.get("paid_by"))} if payment else None,
        "attachments": doc.get("attachments", []),
        "created_at": doc.get("created_at", datetime.utcnow()),
        "updated_at": doc.get("updated_at", datetime.utcnow()),
    }


async def _employees_by_id(db: AsyncIOMotorDatabase, ids) -> dict[str, dict]:
    ids = list({i for i in ids if i})
    if not ids:
        return {}
    return {str(u["_id"]): u async for u in db["users"].find({"_id": {"$in": ids}})}


async def visible_claims_query(db: AsyncIOMotorDatabase, user: dict) -> dict:
    """Mongo filter for the claims ``user`` may list."""
    if user["role"] in {"admin", "finance_manager"} or is_executive(user):
        return {}
    me = ObjectId(user["id"])
    if user["role"] == "supervisor":
        team = [
            u["_id"]
            async for u in db["users"].find(
                {"$or": [{"assigned_supervisor1": me}, {"assigned_supervisor2": me}]}, {"_id": 1}
            )
        ]
        return {"employee_id": {"$in": [me, *team]}}
    return {"employee_id": me}


async def _load_claim(db: AsyncIOMotorDatabase, claim_id: str) -> tuple[dict, Optional[dict]]:
    doc = await db["claims"].find_one({"_id": to_object_id(claim_id, "Claim not found")})
    if not doc:
        raise HTTPException(status_code=404, detail="Claim not found")
    employee = await db["users"].find_one({"_id": doc.get("employee_id")})
    return doc, employee


async def _prepare_line_items(items: list[dict], converter: CurrencyConverter) -> list[dict]:
    # INR amounts and head buckets are always derived here, never taken from the request
    for item in items:
        item["head_bucket"] = get_head_bucket(item["type"])
        item["currency"] = (item.get("currency") or "INR").upper()
        if item["currency"] == "INR":
            item["amount_in_inr"] = item["amount"]
        else:
            converted = await converter.convert_to_inr(item["amount"], item["currency"], item.get("date"))
            item["amount_in_inr"] = converted["amount_in_inr"]
    return items


def _reject_violations(violations: list[dict]) -> None:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": "Claim violates expense policy",
            "violations": [v for v in violations if v["level"] == "error"],
        },
    )


@router.get("", response_model=ClaimListOut)
async def list_claims(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    employee_id: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    q = await visible_claims_query(db, current_user)
    if status_:
        q["status"] = status_
    if category:
        q["category"] = category
    if employee_id:
        wanted = to_object_id(employee_id, "Employee not found")
        allowed = q.get("employee_id")
        if allowed is not None and wanted not in (allowed.get("$in", []) if isinstance(allowed, dict) else [allowed]):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        q["employee_id"] = wanted
    total = await db["claims"].count_documents(q)
    cursor = db["claims"].find(q).sort("created_at", -1).skip((page - 1) * size).limit(size)
    docs = [d async for d in cursor]
    employees = await _employees_by_id(db, [d.get("employee_id") for d in docs])
    items = [claim_out(d, employees.get(str(d.get("employee_id")))) for d in docs]
    return {"items": items, "total": total, "page": page, "size": size}


@router.get("/stats", response_model=ClaimStatsOut)
async def claim_stats(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    q = await visible_claims_query(db, current_user)
    docs = [d async for d in db["claims"].find(q, {"status": 1, "grand_total": 1})]
    rows = status_breakdown(docs)
    return {
        "status_stats": rows,
        "total_claims": sum(r["count"] for r in rows),
        "total_amount": round(sum(r["total_amount"] for r in rows), 2),
    }


@router.post("", response_model=ClaimOut, status_code=201)
async def create_claim(
    payload: ClaimIn,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    converter: CurrencyConverter = Depends(get_currency_converter),
    current_user=Depends(get_current_user),
):
    data = payload.model_dump()
    data["line_items"] = await _prepare_line_items(data["line_items"], converter)
    policy = await get_current_policy(db)
    is_valid, violations = validate_against_policy(data, policy)
    if not is_valid:
        _reject_violations(violations)
    now = datetime.utcnow()
    doc = to_mongo_dates(data)
    doc.update(compute_claim_totals(data["line_items"], data["advances"]))
    doc.update({
        "claim_id": await next_claim_id(db),
        "employee_id": ObjectId(current_user["id"]),
        "status": "submitted",
        "violations": violations,
        "attachments": [],
        "created_at": now,
        "updated_at": now,
    })
    res = await db["claims"].insert_one(doc)
    doc["_id"] = res.inserted_id
    return claim_out(doc, current_user)


@router.get("/{claim_id}", response_model=ClaimOut)
async def get_claim(claim_id: str, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    doc, employee = await _load_claim(db, claim_id)
    if not can_view_claim(current_user, doc, employee):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return claim_out(doc, employee)


@router.get("/{claim_id}/documents")
async def claim_documents(claim_id: str, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    doc, employee = await _load_claim(db, claim_id)
    if not can_view_claim(current_user, doc, employee):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    policy = await get_current_policy(db)
    return {"items": required_documents_for(doc.get("line_items", []), policy, doc.get("attachments", []))}


@router.patch("/{claim_id}", response_model=ClaimOut)
async def update_claim(
    claim_id: str,
    payload: ClaimUpdate,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    converter: CurrencyConverter = Depends(get_currency_converter),
    current_user=Depends(get_current_user),
):
    doc, employee = await _load_claim(db, claim_id)
    if not can_edit_claim(current_user, doc):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot edit this claim")
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "line_items" in changes:
        changes["line_items"] = await _prepare_line_items(changes["line_items"], converter)
    merged = {**restore_dates(doc), **changes}
    policy = await get_current_policy(db)
    is_valid, violations = validate_against_policy(merged, policy)
    if not is_valid:
        _reject_violations(violations)
    now = datetime.utcnow()
    updates = to_mongo_dates(changes)
    updates.update(compute_claim_totals(merged.get("line_items", []), merged.get("advances", [])))
    updates.update({"violations": violations, "updated_at": now})
    unset = {}
    # An owner fixing a rejected claim sends it back through approval
    if doc.get("status") == "rejected" and str(doc.get("employee_id")) == current_user["id"]:
        updates["status"] = "submitted"
        unset = {"supervisor_approval": "", "finance_approval": "", "executive_approval": "", "supervisor_approvals": ""}
    update_doc: dict = {"$set": updates}
    if unset:
        update_doc["$unset"] = unset
    await db["claims"].update_one({"_id": doc["_id"]}, update_doc)
    updated = await db["claims"].find_one({"_id": doc["_id"]})
    return claim_out(updated, employee)


@router.delete("/{claim_id}", response_model=MessageOut)
async def delete_claim(claim_id: str, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    doc, _ = await _load_claim(db, claim_id)
    if not can_delete_claim(current_user, doc):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete this claim")
    await db["claims"].delete_one({"_id": doc["_id"]})
    for att in doc.get("attachments", []):
        delete_upload(att["storage_key"])
    await create_audit_log(db, current_user["id"], "delete", "claim", doc.get("claim_id"))
    return {"message": "Claim deleted successfully"}


def _notify(background: BackgroundTasks, claim: dict, employee: Optional[dict], reason: Optional[str] = None) -> None:
    if not employee or not employee.get("email"):
        return
    background.add_task(
        send_claim_status_email,
        to=employee["email"],
        employee_name=employee.get("name", ""),
        claim_id=claim.get("claim_id", ""),
        status=claim.get("status", ""),
        amount=float(claim.get("grand_total") or 0),
        reason=reason,
    )


async def _decide(
    stage: str,
    claim_id: str,
    payload: ApprovalIn,
    db: AsyncIOMotorDatabase,
    current_user: dict,
    background: BackgroundTasks,
) -> dict:
    doc, employee = await _load_claim(db, claim_id)
    if not can_approve_claim(current_user, doc, employee):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot act on this claim")
    actor = ObjectId(current_user["id"])
    try:
        updates = apply_decision(doc, stage, payload.action, actor, payload.notes, payload.reason)
    except WorkflowError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if stage == "supervisor" and payload.action == "approve":
        policy = await get_current_policy(db)
        required = {str(s) for s in ((employee or {}).get("assigned_supervisor1"), (employee or {}).get("assigned_supervisor2")) if s}
        done = {str(s) for s in doc.get("supervisor_approvals", [])}
        if current_user["id"] in done:
            raise HTTPException(status_code=400, detail="You have already approved this claim")
        done.add(current_user["id"])
        if policy.get("approval_mode") == "both" and len(required) > 1 and not required <= done:
            await db["claims"].update_one(
                {"_id": doc["_id"], "status": "submitted"},
                {"$push": {"supervisor_approvals": actor}, "$set": {"updated_at": datetime.utcnow()}},
            )
            updated = await db["claims"].find_one({"_id": doc["_id"]})
            return claim_out(updated, employee)

    push = {"$push": {"supervisor_approvals": actor}} if stage == "supervisor" and payload.action == "approve" else {}
    await db["claims"].update_one({"_id": doc["_id"]}, {"$set": updates, **push})
    updated = await db["claims"].find_one({"_id": doc["_id"]})
    await create_audit_log(
        db, current_user["id"], f"{stage}_{payload.action}", "claim", doc.get("claim_id"), {"status": updates["status"]}
    )
    _notify(background, updated, employee, payload.reason or payload.notes if payload.action == "reject" else None)
    return claim_out(updated, employee)


@router.post("/{claim_id}/approve", response_model=ClaimOut)
async def supervisor_approve(
    claim_id: str,
    payload: ApprovalIn,
    background: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    if current_user["role"] != "supervisor":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only supervisors can perform this action")
    return await _decide("supervisor", claim_id, payload, db, current_user, background)


@router.post("/{claim_id}/finance-approve", response_model=ClaimOut)
async def finance_approve(
    claim_id: str,
    payload: ApprovalIn,
    background: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    if current_user["role"] != "finance_manager":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only finance managers can perform this action")
    return await _decide("finance", claim_id, payload, db, current_user, background)


@router.post("/{claim_id}/executive-approve", response_model=ClaimOut)
async def executive_approve(
    claim_id: str,
    payload: ApprovalIn,
    background: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_executive(current_user)
    return await _decide("executive", claim_id, payload, db, current_user, background)


@router.post("/{claim_id}/mark-paid", response_model=ClaimOut)
async def mark_claim_paid(
    claim_id: str,
    payload: PaymentIn,
    background: BackgroundTasks,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    doc, employee = await _load_claim(db, claim_id)
    if current_user["role"] != "finance_manager":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only finance managers can perform this action")
    policy = await get_current_policy(db)
    channels = policy.get("payout_channels") or []
    if channels and payload.channel not in channels:
        raise HTTPException(status_code=400, detail=f"Payout channel must be one of: {', '.join(channels)}")
    if not can_mark_paid(current_user, doc):
        raise HTTPException(status_code=400, detail="Only executive approved claims can be marked paid")
    try:
        updates = mark_paid(doc, ObjectId(current_user["id"]), payload.channel, payload.reference)
    except WorkflowError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db["claims"].update_one({"_id": doc["_id"]}, {"$set": updates})
    updated = await db["claims"].find_one({"_id": doc["_id"]})
    await create_audit_log(db, current_user["id"], "mark_paid", "claim", doc.get("claim_id"), {"channel": payload.channel})
    _notify(background, updated, employee)
    return claim_out(updated, employee)


@router.post("/{claim_id}/upload", response_model=ClaimOut)
async def upload_attachment(
    claim_id: str,
    file: UploadFile = File(...),
    label: Optional[str] = Form(None),
    line_item_index: Optional[int] = Form(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    doc, employee = await _load_claim(db, claim_id)
    if not can_edit_claim(current_user, doc):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot add files to this claim")
    if line_item_index is not None and not 0 <= line_item_index < len(doc.get("line_items", [])):
        raise HTTPException(status_code=400, detail="Line item index out of range")
    content = await file.read()
    policy = await get_current_policy(db)
    ok, violations = validate_file_upload(file.filename or "", len(content), policy)
    if not ok:
        raise HTTPException(status_code=400, detail={"message": "File rejected", "violations": violations})
    key = save_upload(doc.get("claim_id") or str(doc["_id"]), file.filename or "upload", content)
    attachment = {
        "file_id": key.rsplit("/", 1)[-1].split(".", 1)[0],
        "name": file.filename,
        "size": len(content),
        "mime": file.content_type,
        "storage_key": key,
        "label": label,
        "line_item_index": line_item_index,
        "uploaded_at": datetime.utcnow(),
    }
    await db["claims"].update_one(
        {"_id": doc["_id"]},
        {"$push": {"attachments": attachment}, "$set": {"updated_at": datetime.utcnow()}},
    )
    updated = await db["claims"].find_one({"_id": doc["_id"]})
    return claim_out(updated, employee)
