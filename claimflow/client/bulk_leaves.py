"""CSV import for the executive bulk leave upload.

The template columns are ``Employee Email, Start Date, End Date, Leave Type,
Reason, Hours``. Multi-day records are split into one leave per day before
upload, and the server accepts at most 100 rows per request.
"""
import csv
import io
from datetime import date, timedelta
from typing import Iterable

from claimflow.schemas.common import LeaveType


MAX_BULK_ROWS = 100
DEFAULT_LEAVE_TYPE = LeaveType.planned.value
DEFAULT_HOURS = 8

CSV_TEMPLATE = (
    "Employee Email,Start Date,End Date,Leave Type,Reason,Hours\n"
    "asha@claimflow.io,2024-12-17,2024-12-17,Planned Leave,Family function,8\n"
    "ravi@claimflow.io,2024-12-23,2024-12-27,Planned Leave,Vacation,8\n"
    "meera@claimflow.io,2024-12-30,2024-12-30,Permission,Personal work,2\n"
)


def parse_csv(text: str) -> list[dict]:
    """Parse CSV text into leave records; the header row is skipped and short rows ignored."""
    rows = list(csv.reader(io.StringIO(text.strip())))
    records = []
    for values in rows[1:]:
        values = [v.strip() for v in values]
        if len(values) < 5:
            continue
        hours = values[5] if len(values) > 5 and values[5] else ""
        records.append({
            "employee_email": values[0],
            "start_date": values[1],
            "end_date": values[2],
            "leave_type": values[3] or DEFAULT_LEAVE_TYPE,
            "reason": values[4],
            "hours": float(hours) if hours else DEFAULT_HOURS,
        })
    return records


def validate_record(record: dict) -> list[str]:
    errors = []
    if not record.get("employee_email"):
        errors.append("Employee email is required")
    if not record.get("start_date"):
        errors.append("Start date is required")
    if not record.get("end_date"):
        errors.append("End date is required")
    if not record.get("leave_type"):
        errors.append("Leave type is required")
    elif record["leave_type"] not in {t.value for t in LeaveType}:
        errors.append(f"Unknown leave type: {record['leave_type']}")
    if not record.get("reason"):
        errors.append("Reason is required")
    if record.get("start_date") and record.get("end_date"):
        try:
            if date.fromisoformat(record["start_date"]) > date.fromisoformat(record["end_date"]):
                errors.append("Start date cannot be after end date")
        except ValueError:
            errors.append("Dates must be in YYYY-MM-DD format")
    return errors


def validate_records(records: Iterable[dict]) -> list[str]:
    problems = []
    for index, record in enumerate(records, start=1):
        errors = validate_record(record)
        if errors:
            problems.append(f"Record {index}: {', '.join(errors)}")
    return problems


def build_bulk_payload(records: Iterable[dict]) -> list[dict]:
    """Split each record into single-day rows ready for ``POST /leaves/bulk``."""
    rows = []
    for record in records:
        day = date.fromisoformat(record["start_date"])
        end = date.fromisoformat(record["end_date"])
        while day <= end:
            rows.append({
                "employee_email": record["employee_email"],
                "leave_type": record["leave_type"],
                "start_date": day.isoformat(),
                "end_date": day.isoformat(),
                "reason": record.get("reason", ""),
                "hours": record.get("hours") or DEFAULT_HOURS,
            })
            day += timedelta(days=1)
    if len(rows) > MAX_BULK_ROWS:
        raise ValueError(f"Bulk upload is limited to {MAX_BULK_ROWS} leave days per request (got {len(rows)})")
    return rows


def summarize_results(response: dict) -> dict:
    summary = response.get("summary") or {}
    failures = [
        f"{r.get('employee_email')}: {r.get('error')}"
        for r in response.get("results", [])
        if not r.get("success")
    ]
    successful = summary.get("successful", 0)
    if failures:
        message = f"Uploaded {successful} leave records, {len(failures)} failed"
    else:
        message = f"Successfully uploaded {successful} leave records!"
    return {"message": message, "successful": successful, "failed": len(failures), "errors": failures}
