from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text

from slabtrade.core.constants import ReservationStatus
from slabtrade.database.base import Base
from slabtrade.models.batch import _new_id, _utc_now


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=_new_id)
    batch_id = Column(String(36), ForeignKey("batches.id"), nullable=False)
    industry_id = Column(String(36), nullable=False)
    reserved_by_user_id = Column(String(36), nullable=False)

    customer_name = Column(String(255))
    customer_contact = Column(String(255))

    quantity_slabs = Column(Integer, nullable=False)
    reserved_price = Column(Numeric(14, 4))
    reserved_price_unit = Column(String(3))

    status = Column(String(20), nullable=False, default=ReservationStatus.ACTIVE.value)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text)

    approved_by = Column(String(36))
    approved_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    closed_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        onupdate=_utc_now,
    )

    __table_args__ = (
        CheckConstraint("quantity_slabs > 0", name="ck_reservations_quantity_positive"),
        Index("idx_reservations_status_expiry", "status", "expires_at"),
        Index("idx_reservations_batch", "batch_id"),
        Index("idx_reservations_user", "reserved_by_user_id"),
    )


__all__ = ["Reservation"]
