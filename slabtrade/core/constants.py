from decimal import Decimal
from enum import Enum


class PriceUnit(str, Enum):
    M2 = "M2"
    FT2 = "FT2"


class BatchStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    INACTIVE = "INACTIVE"


class ReservationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    CONVERTED = "CONVERTED"


class UserRole(str, Enum):
    ADMIN_INDUSTRIA = "ADMIN_INDUSTRIA"
    VENDEDOR_INTERNO = "VENDEDOR_INTERNO"
    BROKER = "BROKER"


# 1 m2 = 10.76391042 ft2
M2_TO_FT2 = Decimal("10.76391042")
CM2_PER_M2 = Decimal("10000")

BATCH_CODE_PATTERN = r"^[A-Z]{3}-\d{6}$"
MAX_SLAB_SIDE_CM = Decimal("1000")
MAX_SLAB_THICKNESS_CM = Decimal("100")
