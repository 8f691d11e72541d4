from datetime import datetime, date as _date
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator

from claimflow.schemas.common import ClaimStatus


class LineItemBase(BaseModel):
    date: _date
    amount: float = Field(gt=0)
    currency: str = "INR"
    amount_in_inr: Optional[float] = Field(default=None, ge=0)
    gst_total: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    sub_category: Optional[str] = None
    notes: Optional[str] = None
    head_bucket: Optional[str] = None


class FlightLineItem(LineItemBase):
    type: Literal["flight"]
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    airline: str = Field(min_length=1)
    pnr: Optional[str] = None
    invoice_no: Optional[str] = None


class TrainLineItem(LineItemBase):
    type: Literal["train"]
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    train_no: Optional[str] = None
    travel_class: Optional[str] = None


class LocalTravelLineItem(LineItemBase):
    type: Literal["local_travel"]
    mode: Literal["auto", "taxi", "metro", "bus", "ride_hailing"]
    origin: Optional[str] = None
    destination: Optional[str] = None


class MileageLineItem(LineItemBase):
    type: Literal["mileage"]
    kilometers: float = Field(gt=0)


class MealLineItem(LineItemBase):
    type: Literal["meal"]
    meal_type: Literal["breakfast", "lunch", "dinner", "snack"]
    city: Optional[str] = None


class GstTaxBreakup(BaseModel):
    cgst: Optional[float] = None
    sgst: Optional[float] = None
    igst: Optional[float] = None


class GstDetails(BaseModel):
    gstin: Optional[str] = None
    tax_breakup: Optional[GstTaxBreakup] = None


class LodgingLineItem(LineItemBase):
    type: Literal["lodging"]
    check_in: _date
    check_out: _date
    nights: int = Field(gt=0)
    city: str = Field(min_length=1)
    gst: Optional[GstDetails] = None

    @model_validator(mode="after")
    def _check_stay(self):
        if self.check_out < self.check_in:
            raise ValueError("Check-out cannot be before check-in")
        return self


class ClientEntertainmentLineItem(LineItemBase):
    type: Literal["client_entertainment"]
    attendee_count: Optional[int] = Field(default=None, gt=0)
    customer: Optional[str] = None


class TeamMealLineItem(LineItemBase):
    type: Literal["team_meal"]
    attendee_count: Optional[int] = Field(default=None, gt=0)


class AdminMiscLineItem(LineItemBase):
    type: Literal["admin_misc"]
    sub_category: str = Field(min_length=1)


LineItem = Annotated[
    Union[
        FlightLineItem,
        TrainLineItem,
        LocalTravelLineItem,
        MileageLineItem,
        MealLineItem,
        LodgingLineItem,
        ClientEntertainmentLineItem,
        TeamMealLineItem,
        AdminMiscLineItem,
    ],
    Field(discriminator="type"),
]


class Advance(BaseModel):
    date: _date
    ref_no: Optional[str] = None
    amount: float = Field(gt=0)


class Trip(BaseModel):
    from_date: Optional[_date] = None
    to_date: Optional[_date] = None
    purpose: str = Field(min_length=1)
    cost_center: Optional[str] = None
    project: Optional[str] = None
    city_class: Optional[Literal["A", "B", "C"]] = None


class ClaimIn(BaseModel):
    category: str = Field(min_length=1)
    business_unit: str = Field(min_length=1)
    trip: Optional[Trip] = None
    advances: list[Advance] = Field(default_factory=list)
    line_items: list[LineItem] = Field(min_length=1)


class ClaimUpdate(BaseModel):
    category: Optional[str] = None
    business_unit: Optional[str] = None
    trip: Optional[Trip] = None
    advances: Optional[list[Advance]] = None
    line_items: Optional[list[LineItem]] = Field(default=None, min_length=1)


class ApprovalIn(BaseModel):
    action: Literal["approve", "reject"]
    notes: Optional[str] = None
    reason: Optional[str] = None


class PaymentIn(BaseModel):
    channel: str = Field(min_length=1)
    reference: Optional[str] = None


class Violation(BaseModel):
    code: str
    message: str
    level: Literal["error", "warn"]
    field: Optional[str] = None
    line_item_index: Optional[int] = None


class StageApproval(BaseModel):
    status: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    reason: Optional[str] = None


class Payment(BaseModel):
    paid_by: Optional[str] = None
    paid_at: Optional[datetime] = None
    channel: Optional[str] = None
    reference: Optional[str] = None


class Attachment(BaseModel):
    file_id: str
    name: str
    size: int
    mime: Optional[str] = None
    storage_key: str
    label: Optional[str] = None
    line_item_index: Optional[int] = None
    uploaded_at: datetime


class EmployeeRef(BaseModel):
    id: str
    name: str = ""
    email: str = ""


class ClaimOut(BaseModel):
    id: str
    claim_id: str
    employee: EmployeeRef
    category: str
    business_unit: str
    trip: Optional[Trip] = None
    line_items: list[LineItem]
    advances: list[Advance] = Field(default_factory=list)
    grand_total: float
    advances_total: float = 0
    net_payable: float
    totals_by_head: dict[str, float] = Field(default_factory=dict)
    status: ClaimStatus
    violations: list[Violation] = Field(default_factory=list)
    supervisor_approval: Optional[StageApproval] = None
    finance_approval: Optional[StageApproval] = None
    executive_approval: Optional[StageApproval] = None
    payment: Optional[Payment] = None
    attachments: list[Attachment] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ClaimListOut(BaseModel):
    items: list[ClaimOut]
    total: int
    page: int
    size: int


class StatusStat(BaseModel):
    status: str
    count: int
    total_amount: float


class ClaimStatsOut(BaseModel):
    status_stats: list[StatusStat]
    total_claims: int
    total_amount: float
