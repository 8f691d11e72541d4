from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator

from claimflow.schemas.common import LeaveStatus, LeaveType


class LeaveIn(BaseModel):
    type: LeaveType
    start_date: date
    end_date: date
    hours: Optional[float] = None
    reason: Optional[str] = ""
    timezone: str = "Asia/Kolkata"

    @model_validator(mode="after")
    def _check_dates_and_hours(self):
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        if self.type == LeaveType.permission:
            if self.hours is None or self.hours <= 0 or self.hours > 24:
                raise ValueError("Hours must be between 0 and 24 for Permission type")
        else:
            # Only Permission requests are measured in hours
            self.hours = None
        return self


class LeaveUpdate(BaseModel):
    type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    hours: Optional[float] = None
    reason: Optional[str] = None
    timezone: Optional[str] = None


class LeaveDecisionIn(BaseModel):
    action: Literal["approve", "reject"]
    notes: Optional[str] = ""
    rejection_reason: Optional[str] = ""


class LeaveApproval(BaseModel):
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = ""
    rejection_reason: Optional[str] = ""


class EmployeeBrief(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    department: Optional[str] = None


class LeaveOut(BaseModel):
    id: str
    leave_id: str
    employee: EmployeeBrief
    type: LeaveType
    start_date: date
    end_date: date
    is_full_day: bool = True
    hours: Optional[float] = None
    reason: Optional[str] = ""
    timezone: str = "Asia/Kolkata"
    status: LeaveStatus
    approval: Optional[LeaveApproval] = None
    duration_in_days: float
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class LeaveSummary(BaseModel):
    total_leave_days: float = 0
    planned_leave_days: float = 0
    unplanned_leave_days: float = 0
    wfh_days: float = 0
    permission_hours: float = 0
    business_trip_days: float = 0
    od_days: float = 0
    flexi_days: float = 0


class LeaveListOut(BaseModel):
    leaves: list[LeaveOut]
    pagination: Pagination
    year_summary: Optional[LeaveSummary] = None


class LeaveMessageOut(BaseModel):
    message: str
    leave: LeaveOut


class EmployeeLeaveSummary(LeaveSummary):
    employee: EmployeeBrief


class OrgLeaveSummary(BaseModel):
    total_employees: int = 0
    employees_on_leave: int = 0
    total_leave_days: float = 0
    leaves_by_type: dict[str, float] = Field(default_factory=dict)
    leaves_by_department: dict[str, float] = Field(default_factory=dict)
    employee_summaries: list[EmployeeLeaveSummary] = Field(default_factory=list)


class LeaveAnalyticsOut(BaseModel):
    period: str
    summary: OrgLeaveSummary


class TodayLeaveItem(BaseModel):
    employee: EmployeeBrief
    leave_type: LeaveType
    reason: Optional[str] = ""
    is_full_day: bool = True
    hours: Optional[float] = None


class TodayLeavesOut(BaseModel):
    date: date
    employees: list[TodayLeaveItem]


class RangeLeavesOut(BaseModel):
    start_date: date
    end_date: date
    leaves: list[LeaveOut]


class BulkLeaveRow(BaseModel):
    employee_email: Optional[str] = None
    leave_type: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    hours: Optional[float] = None
    reason: Optional[str] = ""


class BulkLeaveIn(BaseModel):
    leaves: list[BulkLeaveRow] = Field(min_length=1, max_length=100)


class BulkLeaveResult(BaseModel):
    employee_email: str
    success: bool
    leave_id: Optional[str] = None
    error: Optional[str] = None


class BulkSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BulkLeaveOut(BaseModel):
    message: str
    summary: BulkSummary
    results: list[BulkLeaveResult]
