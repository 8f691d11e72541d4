from datetime import date, datetime
from typing import Iterable, Optional

from claimflow.schemas.common import LeaveType


APPROVED_STATUSES = {"approved", "finance_approved", "executive_approved", "paid"}
PERMISSION_HOURS_PER_DAY = 8

def utc_today() -> date:
    """Calendar day used for every "on leave today" view."""
    return datetime.utcnow().date()


_SUMMARY_FIELDS = {
    LeaveType.planned.value: "planned_leave_days",
    LeaveType.unplanned.value: "unplanned_leave_days",
    LeaveType.wfh.value: "wfh_days",
    LeaveType.business_trip.value: "business_trip_days",
    LeaveType.od.value: "od_days",
    LeaveType.flexi.value: "flexi_days",
}


def _amount(claim: dict) -> float:
    return float(claim.get("grand_total") or claim.get("amount") or 0)


def calculate_claim_stats(claims: Iterable[dict]) -> dict:
    stats = {"total": 0, "pending": 0, "approved": 0, "rejected": 0, "total_amount": 0.0}
    for claim in claims:
        status = claim.get("status")
        stats["total"] += 1
        stats["total_amount"] += _amount(claim)
        if status == "submitted":
            stats["pending"] += 1
        elif status in APPROVED_STATUSES:
            stats["approved"] += 1
        elif status == "rejected":
            stats["rejected"] += 1
    stats["total_amount"] = round(stats["total_amount"], 2)
    return stats


def status_breakdown(claims: Iterable[dict]) -> list[dict]:
    out: dict[str, dict] = {}
    for claim in claims:
        status = claim.get("status") or "unknown"
        row = out.setdefault(status, {"status": status, "count": 0, "total_amount": 0.0})
        row["count"] += 1
        row["total_amount"] = round(row["total_amount"] + _amount(claim), 2)
    return sorted(out.values(), key=lambda r: r["status"])


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def duration_in_days(leave: dict) -> float:
    """Permission requests count hours/8, everything else inclusive calendar days."""
    if leave.get("type") == LeaveType.permission.value:
        return round(float(leave.get("hours") or 0) / PERMISSION_HOURS_PER_DAY, 2)
    start = _to_date(leave["start_date"])
    end = _to_date(leave["end_date"])
    return float((end - start).days + 1)


def leave_year_summary(leaves: Iterable[dict]) -> dict:
    summary = {
        "total_leave_days": 0.0,
        "planned_leave_days": 0.0,
        "unplanned_leave_days": 0.0,
        "wfh_days": 0.0,
        "permission_hours": 0.0,
        "business_trip_days": 0.0,
        "od_days": 0.0,
        "flexi_days": 0.0,
    }
    for leave in leaves:
        if leave.get("status") == "rejected":
            continue
        kind = leave.get("type")
        if kind == LeaveType.permission.value:
            summary["permission_hours"] += float(leave.get("hours") or 0)
        elif kind in _SUMMARY_FIELDS:
            summary[_SUMMARY_FIELDS[kind]] += duration_in_days(leave)
        summary["total_leave_days"] += duration_in_days(leave)
    return {k: round(v, 2) for k, v in summary.items()}


def leave_org_summary(leaves: Iterable[dict], employees: Iterable[dict], on: Optional[date] = None) -> dict:
    """Organisation-wide leave totals for the analytics view.

    ``employees`` are user documents keyed by ``_id``; ``on`` is the day used
    for the "currently on leave" counter (defaults to today).
    """
    on = on or utc_today()
    staff = {str(e["_id"]): e for e in employees}
    per_employee: dict[str, list[dict]] = {}
    by_type: dict[str, float] = {}
    by_department: dict[str, float] = {}
    on_leave: set[str] = set()
    total_days = 0.0

    for leave in leaves:
        if leave.get("status") == "rejected":
            continue
        emp_id = str(leave.get("employee_id"))
        days = duration_in_days(leave)
        total_days += days
        per_employee.setdefault(emp_id, []).append(leave)
        by_type[leave.get("type")] = round(by_type.get(leave.get("type"), 0.0) + days, 2)
        dept = (staff.get(emp_id) or {}).get("department") or "Unassigned"
        by_department[dept] = round(by_department.get(dept, 0.0) + days, 2)
        if leave.get("status") == "approved" and _to_date(leave["start_date"]) <= on <= _to_date(leave["end_date"]):
            on_leave.add(emp_id)

    summaries = []
    for emp_id, items in per_employee.items():
        emp = staff.get(emp_id) or {}
        row = leave_year_summary(items)
        row["employee"] = {
            "id": emp_id,
            "name": emp.get("name", ""),
            "email": emp.get("email", ""),
            "department": emp.get("department"),
        }
        summaries.append(row)
    summaries.sort(key=lambda r: r["total_leave_days"], reverse=True)

    return {
        "total_employees": len(staff),
        "employees_on_leave": len(on_leave),
        "total_leave_days": round(total_days, 2),
        "leaves_by_type": by_type,
        "leaves_by_department": by_department,
        "employee_summaries": summaries,
    }
