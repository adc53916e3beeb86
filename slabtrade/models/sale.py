from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text

from slabtrade.database.base import Base
from slabtrade.models.batch import _new_id, _utc_now


class Sale(Base):
    """Append-only record of a converted reservation."""

    __tablename__ = "sales"

    id = Column(String(36), primary_key=True, default=_new_id)
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=False, unique=True)
    batch_id = Column(String(36), ForeignKey("batches.id"), nullable=False)
    industry_id = Column(String(36), nullable=False)
    sold_by_user_id = Column(String(36), nullable=False)

    customer_name = Column(String(255))
    customer_contact = Column(String(255))

    quantity_slabs_sold = Column(Integer, nullable=False)
    total_area_sold = Column(Numeric(14, 4), nullable=False)
    price_per_unit = Column(Numeric(14, 4), nullable=False)
    price_unit = Column(String(3), nullable=False)

    sale_price = Column(Numeric(14, 2), nullable=False)
    broker_commission = Column(Numeric(14, 2), nullable=False, default=0)
    net_industry_value = Column(Numeric(14, 2), nullable=False)

    sale_date = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    invoice_ref = Column(String(500))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    __table_args__ = (
        Index("idx_sales_industry_date", "industry_id", "sale_date"),
        Index("idx_sales_seller", "sold_by_user_id"),
    )


__all__ = ["Sale"]
