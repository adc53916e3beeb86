from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from slabtrade.core.constants import PriceUnit
from slabtrade.schemas.batch import BatchRead


class ShareBatchRequest(BaseModel):
    batch_id: str
    user_id: str
    negotiated_price: Optional[Decimal] = None
    negotiated_price_unit: Optional[PriceUnit] = None


class NegotiatedPriceUpdate(BaseModel):
    negotiated_price: Optional[Decimal] = None
    negotiated_price_unit: Optional[PriceUnit] = None


class GrantRead(BaseModel):
    id: str
    batch_id: str
    shared_with_user_id: str
    industry_owner_id: str
    negotiated_price: Optional[Decimal] = None
    negotiated_price_unit: Optional[PriceUnit] = None
    shared_at: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ShareCatalogRequest(BaseModel):
    broker_user_id: str
    can_show_prices: bool = False


class CatalogPermissionRead(BaseModel):
    id: str
    industry_id: str
    broker_user_id: str
    can_show_prices: bool
    granted_at: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SharedBatchRead(BaseModel):
    batch: BatchRead
    price: Optional[Decimal] = None
    price_unit: PriceUnit
    negotiated: bool = False
    grant_id: Optional[str] = None
    via_catalog: bool = False
