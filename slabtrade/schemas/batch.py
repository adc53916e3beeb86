from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from slabtrade.core.constants import BatchStatus, PriceUnit


class BatchBase(BaseModel):
    product_id: str
    batch_code: str
    height: Decimal
    width: Decimal
    thickness: Decimal
    unit_price: Decimal
    price_unit: PriceUnit = PriceUnit.M2
    origin_quarry: Optional[str] = None
    entry_date: date


class BatchCreate(BatchBase):
    total_slabs: int


class BatchUpdate(BaseModel):
    batch_code: Optional[str] = None
    height: Optional[Decimal] = None
    width: Optional[Decimal] = None
    thickness: Optional[Decimal] = None
    total_slabs: Optional[int] = None
    unit_price: Optional[Decimal] = None
    price_unit: Optional[PriceUnit] = None
    origin_quarry: Optional[str] = None


class AvailabilityAdjust(BaseModel):
    quantity: int
    target: BatchStatus = Field(description="INACTIVE to set slabs aside, AVAILABLE to return them")


class BatchRead(BatchBase):
    id: str
    industry_id: str
    total_slabs: int
    available_slabs: int
    reserved_slabs: int
    sold_slabs: int
    inactive_slabs: int
    total_area: Decimal
    status: BatchStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BatchList(BaseModel):
    items: List[BatchRead] = Field(default_factory=list)
    total: int = 0
