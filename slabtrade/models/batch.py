import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from slabtrade.core.constants import BatchStatus, PriceUnit
from slabtrade.database.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Batch(Base):
    __tablename__ = "batches"

    id = Column(String(36), primary_key=True, default=_new_id)
    industry_id = Column(String(36), nullable=False)
    product_id = Column(String(36), nullable=False)
    batch_code = Column(String(20), nullable=False)

    # centimeters
    height = Column(Numeric(10, 2), nullable=False)
    width = Column(Numeric(10, 2), nullable=False)
    thickness = Column(Numeric(10, 2), nullable=False)

    total_slabs = Column(Integer, nullable=False)
    available_slabs = Column(Integer, nullable=False, default=0)
    reserved_slabs = Column(Integer, nullable=False, default=0)
    sold_slabs = Column(Integer, nullable=False, default=0)
    inactive_slabs = Column(Integer, nullable=False, default=0)

    # m2, fixed at creation; only batch corrections recompute it
    total_area = Column(Numeric(14, 4), nullable=False)

    unit_price = Column(Numeric(14, 4), nullable=False)
    price_unit = Column(String(3), nullable=False, default=PriceUnit.M2.value)

    origin_quarry = Column(String(100))
    entry_date = Column(Date, nullable=False)

    status = Column(String(20), nullable=False, default=BatchStatus.AVAILABLE.value)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        onupdate=_utc_now,
    )

    __table_args__ = (
        UniqueConstraint("industry_id", "batch_code", name="uq_batches_industry_code"),
        CheckConstraint(
            "available_slabs + reserved_slabs + sold_slabs + inactive_slabs = total_slabs",
            name="ck_batches_slab_partition",
        ),
        CheckConstraint("available_slabs >= 0", name="ck_batches_available_non_negative"),
        CheckConstraint("reserved_slabs >= 0", name="ck_batches_reserved_non_negative"),
        CheckConstraint("sold_slabs >= 0", name="ck_batches_sold_non_negative"),
        CheckConstraint("inactive_slabs >= 0", name="ck_batches_inactive_non_negative"),
        CheckConstraint("total_slabs > 0", name="ck_batches_total_positive"),
        Index("idx_batches_industry_status", "industry_id", "status"),
        Index("idx_batches_product", "product_id"),
    )

    def __repr__(self) -> str:
        return "<Batch {} {} avail={} res={} sold={} inactive={}>".format(
            self.id,
            self.batch_code,
            self.available_slabs,
            self.reserved_slabs,
            self.sold_slabs,
            self.inactive_slabs,
        )


__all__ = ["Batch"]
