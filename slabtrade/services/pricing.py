"""Unit-price and area arithmetic for slab batches.

Area is stored canonically in m2. Prices are per unit of area, so converting
a price moves in the opposite direction of converting an area: a price per
m2 becomes a smaller price per ft2.

Nothing here rounds except ``round_money``, which callers apply once to final
amounts.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from slabtrade.core.constants import CM2_PER_M2, M2_TO_FT2, PriceUnit
from slabtrade.core.errors import ValidationError

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ApplicablePrice:
    price: Decimal
    unit: PriceUnit
    negotiated: bool = False


def to_decimal(value) -> Decimal:
    if value is None:
        raise ValidationError("Amount is required.")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise ValidationError("Invalid amount: {!r}".format(value)) from exc


def parse_unit(value) -> PriceUnit:
    if isinstance(value, PriceUnit):
        return value
    try:
        return PriceUnit(str(value).strip().upper())
    except ValueError as exc:
        raise ValidationError("Invalid price unit {!r}. Use M2 or FT2.".format(value)) from exc


def convert_unit_price(price, from_unit, to_unit) -> Decimal:
    price = to_decimal(price)
    from_unit = parse_unit(from_unit)
    to_unit = parse_unit(to_unit)
    if from_unit == to_unit:
        return price
    if from_unit == PriceUnit.M2:
        return price / M2_TO_FT2
    return price * M2_TO_FT2


def convert_area(area, from_unit, to_unit) -> Decimal:
    area = to_decimal(area)
    from_unit = parse_unit(from_unit)
    to_unit = parse_unit(to_unit)
    if from_unit == to_unit:
        return area
    if from_unit == PriceUnit.M2:
        return area * M2_TO_FT2
    return area / M2_TO_FT2


def slab_area_m2(height_cm, width_cm) -> Decimal:
    return to_decimal(height_cm) * to_decimal(width_cm) / CM2_PER_M2


def batch_area_m2(height_cm, width_cm, slabs: int) -> Decimal:
    return slab_area_m2(height_cm, width_cm) * int(slabs)


def total_price(total_area_m2, unit_price, unit_price_unit) -> Decimal:
    area = to_decimal(total_area_m2)
    unit = parse_unit(unit_price_unit)
    if unit == PriceUnit.FT2:
        area = convert_area(area, PriceUnit.M2, PriceUnit.FT2)
    return area * to_decimal(unit_price)


def resolve_applicable_price(batch, grant=None) -> ApplicablePrice:
    """Price a grantee pays: the negotiated grant price, else the list price."""
    if grant is not None and grant.negotiated_price is not None:
        return ApplicablePrice(
            price=to_decimal(grant.negotiated_price),
            unit=parse_unit(grant.negotiated_price_unit or PriceUnit.M2),
            negotiated=True,
        )
    return ApplicablePrice(
        price=to_decimal(batch.unit_price),
        unit=parse_unit(batch.price_unit),
    )


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


__all__ = [
    "ApplicablePrice",
    "batch_area_m2",
    "convert_area",
    "convert_unit_price",
    "parse_unit",
    "resolve_applicable_price",
    "round_money",
    "slab_area_m2",
    "to_decimal",
    "total_price",
]
