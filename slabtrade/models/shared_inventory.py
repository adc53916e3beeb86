from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint

from slabtrade.core.constants import PriceUnit
from slabtrade.database.base import Base
from slabtrade.models.batch import _new_id, _utc_now


class SharedInventoryBatch(Base):
    __tablename__ = "shared_inventory_batches"

    id = Column(String(36), primary_key=True, default=_new_id)
    batch_id = Column(String(36), ForeignKey("batches.id"), nullable=False)
    shared_with_user_id = Column(String(36), nullable=False)
    industry_owner_id = Column(String(36), nullable=False)

    negotiated_price = Column(Numeric(14, 4))
    negotiated_price_unit = Column(String(3), nullable=False, default=PriceUnit.M2.value)

    shared_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("batch_id", "shared_with_user_id", name="uq_shared_batch_user"),
        Index("idx_shared_batches_user", "shared_with_user_id"),
    )


class SharedCatalogPermission(Base):
    __tablename__ = "shared_catalog_permissions"

    id = Column(String(36), primary_key=True, default=_new_id)
    industry_id = Column(String(36), nullable=False)
    broker_user_id = Column(String(36), nullable=False)
    can_show_prices = Column(Boolean, nullable=False, default=False)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("industry_id", "broker_user_id", name="uq_catalog_industry_broker"),
    )


__all__ = ["SharedCatalogPermission", "SharedInventoryBatch"]
