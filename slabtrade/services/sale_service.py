"""
Sale finalizer: turns an APPROVED reservation into an immutable sale.

The commission split is fixed here, at confirmation time, from the owner's
list price. Nothing recomputes it later.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slabtrade.core.constants import PriceUnit, ReservationStatus
from slabtrade.core.dates import ensure_utc, utc_now
from slabtrade.core.errors import (
    AlreadyConverted,
    AuthorizationDenied,
    PriceBelowIndustryValue,
    QuantityExceedsReservation,
    ReservationNotApproved,
    SaleNotFound,
    UserNotFound,
    ValidationError,
)
from slabtrade.core.events import SaleConfirmedEvent, publish
from slabtrade.database.session import transaction
from slabtrade.models.batch import Batch
from slabtrade.models.reservation import Reservation
from slabtrade.models.sale import Sale
from slabtrade.models.user import User
from slabtrade.services import ledger
from slabtrade.services.authorization import Actor, Capability, capabilities_for, is_owner, require_capability
from slabtrade.services.pricing import (
    batch_area_m2,
    convert_unit_price,
    parse_unit,
    round_money,
    to_decimal,
)
from slabtrade.services.reservation_service import load_reservation

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CommissionSplit:
    sale_price: Decimal
    net_industry_value: Decimal
    broker_commission: Decimal


@dataclass(frozen=True)
class SalesSummary:
    total_sales: Decimal
    total_commissions: Decimal
    average_ticket: Decimal
    count: int


def compute_commission(batch: Batch, area_m2, final_price, *, broker: bool) -> CommissionSplit:
    """Split ``final_price`` between the owning industry and the seller.

    A broker keeps whatever exceeds the owner's list price for the area sold.
    Sellers of the owning industry earn no commission.
    """
    sale_price = round_money(final_price)
    if not broker:
        return CommissionSplit(sale_price, sale_price, _ZERO)

    list_price_m2 = convert_unit_price(batch.unit_price, batch.price_unit, PriceUnit.M2)
    net = round_money(list_price_m2 * to_decimal(area_m2))
    if sale_price < net:
        raise PriceBelowIndustryValue(
            "Sale price {} is below the industry value {}.".format(sale_price, net),
            {"sale_price": str(sale_price), "net_industry_value": str(net)},
        )
    return CommissionSplit(sale_price, net, sale_price - net)


def _seller_is_broker(db: Session, actor: Actor, reservation: Reservation, batch: Batch) -> bool:
    if reservation.reserved_by_user_id == actor.user_id:
        return not is_owner(actor, batch)
    seller = db.get(User, reservation.reserved_by_user_id)
    if seller is None:
        raise UserNotFound(reservation.reserved_by_user_id)
    return not is_owner(Actor.from_user(seller), batch)


def _require_approved(reservation: Reservation) -> None:
    if reservation.status == ReservationStatus.CONVERTED.value:
        raise AlreadyConverted(
            "Reservation {} was already converted into a sale.".format(reservation.id),
            {"reservation_id": reservation.id},
        )
    if reservation.status != ReservationStatus.APPROVED.value:
        raise ReservationNotApproved(
            "Reservation {} is {} and must be approved before a sale.".format(
                reservation.id, reservation.status
            ),
            {"reservation_id": reservation.id, "status": reservation.status},
        )


def _require_final_quantity(reservation: Reservation, final_quantity) -> int:
    if isinstance(final_quantity, bool) or not isinstance(final_quantity, int) or final_quantity <= 0:
        raise ValidationError("Sold quantity must be a positive integer.", {"final_quantity": final_quantity})
    if final_quantity > reservation.quantity_slabs:
        raise QuantityExceedsReservation(
            "Cannot sell {} slab(s) from a reservation of {}.".format(
                final_quantity, reservation.quantity_slabs
            ),
            {"final_quantity": final_quantity, "reserved": reservation.quantity_slabs},
        )
    return final_quantity


def confirm_sale(
    db: Session,
    actor: Actor,
    reservation_id: str,
    final_quantity: int,
    final_price,
    invoice_ref: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Sale:
    """Convert an approved reservation into a sale.

    ``final_price`` is the total paid by the customer. Slabs not sold go back
    to the available pool.
    """
    now = ensure_utc(now) or utc_now()
    with transaction(db):
        reservation = load_reservation(db, reservation_id)
        batch = ledger.load_batch(db, reservation.batch_id)
        if reservation.reserved_by_user_id != actor.user_id:
            require_capability(db, actor, batch, Capability.APPROVER)

        _require_approved(reservation)
        quantity = _require_final_quantity(reservation, final_quantity)
        final_price = to_decimal(final_price)
        if final_price <= 0:
            raise ValidationError("Sale price must be greater than zero.", {"final_price": str(final_price)})

        area = batch_area_m2(batch.height, batch.width, quantity)
        split = compute_commission(
            batch,
            area,
            final_price,
            broker=_seller_is_broker(db, actor, reservation, batch),
        )
        price_unit = parse_unit(reservation.reserved_price_unit or batch.price_unit)
        price_per_unit = convert_unit_price(split.sale_price / area, PriceUnit.M2, price_unit)

        moved = db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.APPROVED.value,
            )
            .values(status=ReservationStatus.CONVERTED.value, closed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if not moved:
            _require_approved(load_reservation(db, reservation_id))

        remainder = reservation.quantity_slabs - quantity
        if remainder:
            ledger.release(db, batch.id, remainder)
        ledger.convert_to_sold(db, batch.id, quantity)

        sale = Sale(
            reservation_id=reservation.id,
            batch_id=batch.id,
            industry_id=batch.industry_id,
            sold_by_user_id=reservation.reserved_by_user_id,
            customer_name=reservation.customer_name,
            customer_contact=reservation.customer_contact,
            quantity_slabs_sold=quantity,
            total_area_sold=area,
            price_per_unit=price_per_unit,
            price_unit=price_unit.value,
            sale_price=split.sale_price,
            broker_commission=split.broker_commission,
            net_industry_value=split.net_industry_value,
            sale_date=now,
            invoice_ref=invoice_ref,
            notes=notes,
            created_at=now,
        )
        db.add(sale)
        try:
            db.flush()
        except IntegrityError as exc:
            raise AlreadyConverted(
                "Reservation {} was already converted into a sale.".format(reservation_id),
                {"reservation_id": reservation_id},
            ) from exc

    logger.info(
        "Sale confirmed: %d of %d slab(s), price=%s commission=%s net=%s",
        quantity,
        reservation.quantity_slabs,
        split.sale_price,
        split.broker_commission,
        split.net_industry_value,
        extra={
            "batch_id": batch.id,
            "reservation_id": reservation_id,
            "sale_id": sale.id,
            "actor_id": actor.user_id,
        },
    )
    publish(
        SaleConfirmedEvent(
            batch_id=batch.id,
            industry_id=batch.industry_id,
            actor_id=actor.user_id,
            sale_id=sale.id,
            reservation_id=reservation_id,
            quantity_slabs_sold=quantity,
            sale_price=split.sale_price,
            broker_commission=split.broker_commission,
            net_industry_value=split.net_industry_value,
        )
    )
    return sale


def _scoped_sales(actor: Actor):
    stmt = select(Sale)
    if actor.is_admin and actor.industry_id:
        return stmt.where(Sale.industry_id == actor.industry_id)
    return stmt.where(Sale.sold_by_user_id == actor.user_id)


def _apply_filters(stmt, start=None, end=None, seller_id=None):
    if start is not None:
        stmt = stmt.where(Sale.sale_date >= ensure_utc(start))
    if end is not None:
        stmt = stmt.where(Sale.sale_date <= ensure_utc(end))
    if seller_id:
        stmt = stmt.where(Sale.sold_by_user_id == seller_id)
    return stmt


def get_sale(db: Session, actor: Actor, sale_id: str) -> Sale:
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(sale_id)
    if sale.sold_by_user_id == actor.user_id:
        return sale
    batch = db.get(Batch, sale.batch_id)
    if batch is not None and Capability.OWNER in capabilities_for(db, actor, batch):
        return sale
    raise AuthorizationDenied("User {} may not view sale {}.".format(actor.user_id, sale_id))


def list_sales(
    db: Session,
    actor: Actor,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    seller_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Sale]:
    stmt = _apply_filters(_scoped_sales(actor), start, end, seller_id)
    stmt = stmt.order_by(Sale.sale_date.desc()).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars().all())


def summarize_sales(
    db: Session,
    actor: Actor,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    seller_id: Optional[str] = None,
) -> SalesSummary:
    scoped = _apply_filters(_scoped_sales(actor), start, end, seller_id).subquery()
    total, commissions, count = db.execute(
        select(
            func.coalesce(func.sum(scoped.c.sale_price), 0),
            func.coalesce(func.sum(scoped.c.broker_commission), 0),
            func.count(scoped.c.id),
        )
    ).one()

    total = round_money(to_decimal(total))
    commissions = round_money(to_decimal(commissions))
    average = round_money(total / count) if count else _ZERO
    return SalesSummary(
        total_sales=total,
        total_commissions=commissions,
        average_ticket=average,
        count=int(count),
    )


__all__ = [
    "CommissionSplit",
    "SalesSummary",
    "compute_commission",
    "confirm_sale",
    "get_sale",
    "list_sales",
    "summarize_sales",
]
