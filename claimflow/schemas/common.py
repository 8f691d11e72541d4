from enum import Enum


class Role(str, Enum):
    employee = "employee"
    supervisor = "supervisor"
    finance_manager = "finance_manager"
    admin = "admin"


class ClaimStatus(str, Enum):
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    finance_approved = "finance_approved"
    executive_approved = "executive_approved"
    paid = "paid"


class LeaveStatus(str, Enum):
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class LeaveType(str, Enum):
    business_trip = "Business Trip"
    wfh = "WFH"
    planned = "Planned Leave"
    unplanned = "Unplanned Leave"
    od = "OD"
    permission = "Permission"
    flexi = "Flexi"
