from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from slabtrade.core.constants import PriceUnit, ReservationStatus


class ReservationCreate(BaseModel):
    batch_id: str
    quantity_slabs: int
    reserved_price: Optional[Decimal] = None
    reserved_price_unit: Optional[PriceUnit] = None
    expires_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_contact: Optional[str] = None
    notes: Optional[str] = None


class ReservationReject(BaseModel):
    reason: Optional[str] = None


class ReservationRead(BaseModel):
    id: str
    batch_id: str
    industry_id: str
    reserved_by_user_id: str
    customer_name: Optional[str] = None
    customer_contact: Optional[str] = None
    quantity_slabs: int
    reserved_price: Optional[Decimal] = None
    reserved_price_unit: Optional[PriceUnit] = None
    status: ReservationStatus
    expires_at: datetime
    notes: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
