from typing import Iterable, Optional
from fastapi import HTTPException, status

from claimflow.core.config import settings


ROLE_HIERARCHY = {
    "employee": 1,
    "supervisor": 2,
    "finance_manager": 3,
    "admin": 4,
}

# Once finance has signed off, employees can no longer change the claim
LOCKED_CLAIM_STATUSES = {"finance_approved", "executive_approved", "paid"}


def role_level(role: str | None) -> int:
    return ROLE_HIERARCHY.get(str(role or ""), 0)


def has_role_level(user: dict | None, required: str) -> bool:
    if not user:
        return False
    return role_level(user.get("role")) >= role_level(required)


def require_roles(user: dict, allowed: Iterable[str]) -> None:
    role = str(user.get("role", ""))
    if role not in set(allowed):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")


def is_executive(user: dict | None) -> bool:
    if not user:
        return False
    return str(user.get("email", "")).lower() in settings.EXECUTIVE_EMAILS


def require_executive(user: dict, detail: str = "Only executives can perform this action") -> None:
    if not is_executive(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def _owner_id(claim: dict) -> str:
    owner = claim.get("employee_id")
    if isinstance(owner, dict):
        owner = owner.get("id") or owner.get("_id")
    return str(owner or "")


def is_assigned_supervisor(user: dict, employee: Optional[dict]) -> bool:
    if not employee:
        return False
    uid = str(user.get("id", ""))
    return uid in {str(employee.get("assigned_supervisor1") or ""), str(employee.get("assigned_supervisor2") or "")}


def can_view_claim(user: dict, claim: dict, employee: Optional[dict] = None) -> bool:
    role = user.get("role")
    if role in {"admin", "finance_manager"} or is_executive(user):
        return True
    if _owner_id(claim) == str(user.get("id")):
        return True
    return role == "supervisor" and is_assigned_supervisor(user, employee)


def can_edit_claim(user: dict | None, claim: dict) -> bool:
    if not user:
        return False
    if user.get("role") in {"admin", "finance_manager"} or is_executive(user):
        return True
    return _owner_id(claim) == str(user.get("id")) and claim.get("status") not in LOCKED_CLAIM_STATUSES


can_delete_claim = can_edit_claim


def can_approve_claim(user: dict | None, claim: dict, employee: Optional[dict] = None) -> bool:
    if not user:
        return False
    status_ = claim.get("status")
    if is_executive(user) and status_ == "finance_approved":
        return True
    if user.get("role") == "finance_manager":
        return status_ in {"submitted", "approved"} and _owner_id(claim) != str(user.get("id"))
    if user.get("role") == "supervisor":
        return status_ == "submitted" and is_assigned_supervisor(user, employee)
    return False


def can_mark_paid(user: dict | None, claim: dict) -> bool:
    if not user:
        return False
    return user.get("role") == "finance_manager" and claim.get("status") == "executive_approved"


def can_access_user(user: dict, target_user_id: str) -> bool:
    return user.get("role") == "admin" or str(user.get("id")) == str(target_user_id)
