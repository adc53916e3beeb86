from sqlalchemy import Boolean, Column, DateTime, Index, String

from slabtrade.core.constants import UserRole
from slabtrade.database.base import Base
from slabtrade.models.batch import _new_id, _utc_now


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    # Independent brokers do not belong to an industry.
    industry_id = Column(String(36))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(30), nullable=False, default=UserRole.BROKER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    __table_args__ = (
        Index("idx_users_industry_role", "industry_id", "role"),
    )


__all__ = ["User"]
