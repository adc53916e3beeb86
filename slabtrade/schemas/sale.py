from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from slabtrade.core.constants import PriceUnit


class SaleConfirm(BaseModel):
    reservation_id: str
    quantity_slabs: int
    final_price: Decimal
    invoice_ref: Optional[str] = None
    notes: Optional[str] = None


class SaleRead(BaseModel):
    id: str
    reservation_id: str
    batch_id: str
    industry_id: str
    sold_by_user_id: str
    customer_name: Optional[str] = None
    customer_contact: Optional[str] = None
    quantity_slabs_sold: int
    total_area_sold: Decimal
    price_per_unit: Decimal
    price_unit: PriceUnit
    sale_price: Decimal
    broker_commission: Decimal
    net_industry_value: Decimal
    sale_date: datetime
    invoice_ref: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SalesSummaryRead(BaseModel):
    total_sales: Decimal
    total_commissions: Decimal
    average_ticket: Decimal
    count: int

    model_config = ConfigDict(from_attributes=True)
