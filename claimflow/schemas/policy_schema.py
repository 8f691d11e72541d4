from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class RulesBehavior(BaseModel):
    missing_documents: Literal["hard", "soft"] = "hard"
    cap_exceeded: Literal["hard", "soft"] = "soft"


class PolicyOut(BaseModel):
    approval_mode: Literal["both", "any"]
    claim_categories: list[str]
    max_amount_before_finance_manager: float
    allowed_file_types: list[str]
    max_file_size_mb: float
    payout_channels: list[str]
    auto_assign_supervisors: bool
    claim_retention_days: int
    version: str
    mileage_rate: float
    city_classes: list[str]
    meal_caps: dict[str, dict[str, float]]
    lodging_caps: dict[str, float]
    required_documents: dict[str, list[str]]
    admin_sub_categories: list[str]
    rules_behavior: RulesBehavior
    itc_flags: dict[str, str] = Field(default_factory=dict)
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class PolicyUpdate(BaseModel):
    approval_mode: Optional[Literal["both", "any"]] = None
    claim_categories: Optional[list[str]] = None
    max_amount_before_finance_manager: Optional[float] = Field(default=None, ge=0)
    allowed_file_types: Optional[list[str]] = None
    max_file_size_mb: Optional[float] = Field(default=None, ge=1)
    payout_channels: Optional[list[str]] = None
    auto_assign_supervisors: Optional[bool] = None
    claim_retention_days: Optional[int] = Field(default=None, ge=30)
    version: Optional[str] = None
    mileage_rate: Optional[float] = Field(default=None, gt=0)
    city_classes: Optional[list[str]] = None
    meal_caps: Optional[dict[str, dict[str, float]]] = None
    lodging_caps: Optional[dict[str, float]] = None
    required_documents: Optional[dict[str, list[str]]] = None
    admin_sub_categories: Optional[list[str]] = None
    rules_behavior: Optional[RulesBehavior] = None
    itc_flags: Optional[dict[str, str]] = None
