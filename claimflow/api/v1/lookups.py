from typing import List

from fastapi import APIRouter, Depends

from claimflow.core.security import get_current_user
from claimflow.data.category_master import BUSINESS_UNITS, CATEGORY_MASTER, LINE_ITEM_TYPES
from claimflow.schemas.common import LeaveType

router = APIRouter(prefix="/lookups", tags=["lookups"])


@router.get("/categories")
def get_categories(current_user=Depends(get_current_user)):
    return CATEGORY_MASTER


@router.get("/line-item-types")
def get_line_item_types(current_user=Depends(get_current_user)):
    return [{"type": key, **entry} for key, entry in LINE_ITEM_TYPES.items()]


@router.get("/leave-types", response_model=List[str])
def get_leave_types(current_user=Depends(get_current_user)):
    return [t.value for t in LeaveType]


@router.get("/business-units", response_model=List[str])
def get_business_units(current_user=Depends(get_current_user)):
    return BUSINESS_UNITS
