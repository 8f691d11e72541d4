"""Filter bar predicates and sorting over claim listings.

These functions operate on claims shaped like the API output
(``ClaimOut.model_dump()``), so the same helpers serve the server side list
endpoint and any client rendering a cached listing.
"""
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional, Union

from claimflow.schemas.dashboard_schema import ClaimFilters


DateLike = Union[str, date, datetime, None]

SORT_FIELDS = {"employee", "category", "status", "amount", "created_at", "updated_at"}


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_datetime(value: DateLike, end_of_day: bool = False) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    text = str(value).replace("Z", "+00:00")
    if len(text) == 10:
        d = date.fromisoformat(text)
        return datetime.combine(d, time.max if end_of_day else time.min)
    return _naive_utc(datetime.fromisoformat(text))


def _employee(claim: dict) -> dict:
    emp = claim.get("employee")
    if isinstance(emp, dict):
        return emp
    return {"id": str(claim.get("employee_id") or ""), "name": "", "email": ""}


def _amount(claim: dict) -> float:
    return float(claim.get("grand_total") or claim.get("amount") or 0)


def _matches_search(claim: dict, needle: str) -> bool:
    emp = _employee(claim)
    haystack = [
        emp.get("name") or "",
        emp.get("email") or "",
        claim.get("category") or "",
        claim.get("status") or "",
        claim.get("claim_id") or "",
    ]
    haystack.extend(item.get("description") or "" for item in claim.get("line_items") or [])
    return any(needle in str(v).lower() for v in haystack)


def filter_claims(claims: Iterable[dict], filters: ClaimFilters) -> list[dict]:
    needle = filters.search.strip().lower()
    start = _as_datetime(filters.start_date)
    end = _as_datetime(filters.end_date, end_of_day=True)
    out = []
    for claim in claims:
        if needle and not _matches_search(claim, needle):
            continue
        if filters.employee_id and str(_employee(claim).get("id")) != filters.employee_id:
            continue
        if filters.category and claim.get("category") != filters.category:
            continue
        if filters.status and claim.get("status") != filters.status:
            continue
        if start or end:
            created = _as_datetime(claim.get("created_at"))
            if created is None:
                continue
            if start and created < start:
                continue
            if end and created > end:
                continue
        out.append(claim)
    return out


def sort_claims(claims: Iterable[dict], sort_by: str = "created_at", order: str = "desc") -> list[dict]:
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"Cannot sort claims by '{sort_by}'")

    def key(claim: dict):
        if sort_by == "employee":
            return (_employee(claim).get("name") or "").lower()
        if sort_by == "amount":
            return _amount(claim)
        if sort_by in {"created_at", "updated_at"}:
            return _as_datetime(claim.get(sort_by)) or datetime.min
        return str(claim.get(sort_by) or "").lower()

    return sorted(claims, key=key, reverse=order == "desc")


def get_filter_stats(claims: list[dict], filtered: list[dict]) -> dict:
    by_status: dict[str, int] = {}
    by_category: dict[str, int] = {}
    by_employee: dict[str, int] = {}
    for claim in filtered:
        by_status[claim.get("status", "")] = by_status.get(claim.get("status", ""), 0) + 1
        by_category[claim.get("category", "")] = by_category.get(claim.get("category", ""), 0) + 1
        name = _employee(claim).get("name") or "Unknown"
        by_employee[name] = by_employee.get(name, 0) + 1
    total_amount = sum(_amount(c) for c in claims)
    filtered_amount = sum(_amount(c) for c in filtered)
    return {
        "total": len(claims),
        "filtered": len(filtered),
        "by_status": by_status,
        "by_category": by_category,
        "by_employee": by_employee,
        "total_amount": round(total_amount, 2),
        "average_amount": round(total_amount / len(claims), 2) if claims else 0,
        "filtered_amount": round(filtered_amount, 2),
        "filtered_average_amount": round(filtered_amount / len(filtered), 2) if filtered else 0,
    }


def unique_categories(claims: Iterable[dict]) -> list[str]:
    return sorted({c.get("category") for c in claims if c.get("category")})


def unique_employees(claims: Iterable[dict]) -> list[dict]:
    seen: dict[str, dict] = {}
    for claim in claims:
        emp = _employee(claim)
        if emp.get("id") and emp["id"] not in seen:
            seen[emp["id"]] = {"id": emp["id"], "name": emp.get("name") or "", "email": emp.get("email") or ""}
    return sorted(seen.values(), key=lambda e: e["name"].lower())
