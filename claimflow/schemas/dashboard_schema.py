from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ClaimCounters(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total_amount: float = 0


class PendingWork(BaseModel):
    claims_to_approve: int = 0
    claims_to_pay: int = 0
    leaves_to_approve: int = 0


class DashboardSummary(BaseModel):
    role: str
    is_executive: bool = False
    claims: ClaimCounters
    pending: PendingWork
    leaves_on_leave_today: int = 0


class FilterStats(BaseModel):
    total: int = 0
    filtered: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_employee: dict[str, int] = Field(default_factory=dict)
    total_amount: float = 0
    average_amount: float = 0
    filtered_amount: float = 0
    filtered_average_amount: float = 0


class ClaimFilters(BaseModel):
    """Client-side filter bar state; empty values mean 'no filter'."""

    search: str = ""
    employee_id: str = ""
    category: str = ""
    status: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
