"""
Reservation state machine.

    ACTIVE -> APPROVED | REJECTED | EXPIRED | CANCELLED
    APPROVED -> CONVERTED  (see sale_service)

Each transition is a conditional UPDATE keyed on the expected current status.
When two actors race on the same reservation exactly one statement matches a
row; the loser re-reads the row and gets ``InvalidReservationState`` (expiry
returns quietly instead). The status change runs before the ledger call so
slabs are released at most once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from slabtrade.config import get_settings
from slabtrade.core.constants import ReservationStatus
from slabtrade.core.dates import ensure_utc, utc_now
from slabtrade.core.errors import (
    AlreadyConverted,
    AuthorizationDenied,
    DomainError,
    ExpiryInPast,
    InvalidReservationState,
    ReservationNotFound,
    ValidationError,
)
from slabtrade.core.events import EventType, ReservationEvent, publish
from slabtrade.database.session import transaction
from slabtrade.models.batch import Batch
from slabtrade.models.reservation import Reservation
from slabtrade.services import ledger
from slabtrade.services.authorization import (
    Actor,
    Capability,
    capabilities_for,
    find_active_grant,
    require_capability,
)
from slabtrade.services.pricing import parse_unit, resolve_applicable_price, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    examined: int = 0
    expired: int = 0
    failed: int = 0


def load_reservation(db: Session, reservation_id: str) -> Reservation:
    reservation = db.get(Reservation, reservation_id, populate_existing=True)
    if reservation is None:
        raise ReservationNotFound(reservation_id)
    return reservation


def _transition(
    db: Session,
    reservation_id: str,
    expected: ReservationStatus,
    target: ReservationStatus,
    *conditions,
    **values,
) -> bool:
    now = values.pop("now", None) or utc_now()
    stmt = (
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.status == expected.value,
            *conditions,
        )
        .values(status=target.value, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def _state_error(reservation: Reservation, action: str) -> DomainError:
    if reservation.status == ReservationStatus.CONVERTED.value:
        return AlreadyConverted(
            "Reservation {} was already converted into a sale.".format(reservation.id),
            {"reservation_id": reservation.id},
        )
    return InvalidReservationState(
        "Cannot {} reservation {} in status {}.".format(action, reservation.id, reservation.status),
        {"reservation_id": reservation.id, "status": reservation.status},
    )


def _event(event_type: EventType, reservation: Reservation, actor_id=None, reason=None) -> ReservationEvent:
    return ReservationEvent(
        event_type=event_type,
        batch_id=reservation.batch_id,
        industry_id=reservation.industry_id,
        actor_id=actor_id,
        reservation_id=reservation.id,
        quantity_slabs=reservation.quantity_slabs,
        status=reservation.status,
        reason=reason,
        expires_at=ensure_utc(reservation.expires_at),
    )


def _resolve_expiry(expires_at: Optional[datetime], now: datetime) -> datetime:
    if expires_at is None:
        return now + timedelta(days=get_settings().RESERVATION_DEFAULT_DAYS)
    expires_at = ensure_utc(expires_at)
    if expires_at <= now:
        raise ExpiryInPast(
            "Reservation expiry must be in the future.",
            {"expires_at": expires_at.isoformat(), "now": now.isoformat()},
        )
    return expires_at


def create_reservation(
    db: Session,
    actor: Actor,
    batch_id: str,
    quantity: int,
    price=None,
    price_unit=None,
    expires_at: Optional[datetime] = None,
    customer_name: Optional[str] = None,
    customer_contact: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Hold ``quantity`` slabs of a batch for the actor.

    Either the ledger is decremented and an ACTIVE reservation exists, or
    neither happened.
    """
    now = ensure_utc(now) or utc_now()
    with transaction(db):
        batch = ledger.load_batch(db, batch_id)
        require_capability(db, actor, batch, Capability.OWNER, Capability.GRANTEE)
        expiry = _resolve_expiry(expires_at, now)

        if price is None:
            # Internal sellers hold OWNER and may still carry a negotiated grant.
            grant = find_active_grant(db, batch.id, actor.user_id)
            applicable = resolve_applicable_price(batch, grant)
            price, unit = applicable.price, applicable.unit
        else:
            price = to_decimal(price)
            if price <= 0:
                raise ValidationError("Reserved price must be greater than zero.", {"price": str(price)})
            unit = parse_unit(price_unit or batch.price_unit)

        ledger.reserve(db, batch.id, quantity)

        reservation = Reservation(
            batch_id=batch.id,
            industry_id=batch.industry_id,
            reserved_by_user_id=actor.user_id,
            customer_name=customer_name,
            customer_contact=customer_contact,
            quantity_slabs=quantity,
            reserved_price=price,
            reserved_price_unit=unit.value,
            status=ReservationStatus.ACTIVE.value,
            expires_at=expiry,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        db.add(reservation)
        db.flush()

    logger.info(
        "Reservation created for %d slab(s), expires %s",
        quantity,
        expiry.isoformat(),
        extra={"batch_id": batch.id, "reservation_id": reservation.id, "actor_id": actor.user_id},
    )
    publish(_event(EventType.RESERVATION_CREATED, reservation, actor.user_id))
    return reservation


def approve_reservation(
    db: Session,
    actor: Actor,
    reservation_id: str,
    now: Optional[datetime] = None,
) -> Reservation:
    """Gate before conversion; the ledger is not touched."""
    now = ensure_utc(now) or utc_now()
    with transaction(db):
        reservation = load_reservation(db, reservation_id)
        batch = ledger.load_batch(db, reservation.batch_id)
        require_capability(db, actor, batch, Capability.APPROVER)

        moved = _transition(
            db,
            reservation_id,
            ReservationStatus.ACTIVE,
            ReservationStatus.APPROVED,
            Reservation.expires_at > now,
            approved_by=actor.user_id,
            approved_at=now,
            now=now,
        )
        reservation = load_reservation(db, reservation_id)
        if not moved and reservation.status == ReservationStatus.ACTIVE.value:
            raise InvalidReservationState(
                "Reservation {} is past its expiry and can no longer be approved.".format(reservation_id),
                {"reservation_id": reservation_id, "expires_at": ensure_utc(reservation.expires_at).isoformat()},
            )
        if not moved:
            raise _state_error(reservation, "approve")

    logger.info(
        "Reservation approved",
        extra={"batch_id": reservation.batch_id, "reservation_id": reservation_id, "actor_id": actor.user_id},
    )
    publish(_event(EventType.RESERVATION_APPROVED, reservation, actor.user_id))
    return reservation


def _close_and_release(
    db: Session,
    reservation: Reservation,
    target: ReservationStatus,
    action: str,
    *conditions,
    **values,
) -> Reservation:
    moved = _transition(
        db,
        reservation.id,
        ReservationStatus.ACTIVE,
        target,
        *conditions,
        closed_at=values.get("now"),
        **values,
    )
    if not moved:
        raise _state_error(load_reservation(db, reservation.id), action)
    ledger.release(db, reservation.batch_id, reservation.quantity_slabs)
    return load_reservation(db, reservation.id)


def reject_reservation(
    db: Session,
    actor: Actor,
    reservation_id: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    now = ensure_utc(now) or utc_now()
    with transaction(db):
        reservation = load_reservation(db, reservation_id)
        batch = ledger.load_batch(db, reservation.batch_id)
        require_capability(db, actor, batch, Capability.APPROVER)
        reservation = _close_and_release(
            db,
            reservation,
            ReservationStatus.REJECTED,
            "reject",
            rejection_reason=reason,
            now=now,
        )

    logger.info(
        "Reservation rejected: %s",
        reason or "-",
        extra={"batch_id": reservation.batch_id, "reservation_id": reservation_id, "actor_id": actor.user_id},
    )
    publish(_event(EventType.RESERVATION_REJECTED, reservation, actor.user_id, reason=reason))
    return reservation


def cancel_reservation(
    db: Session,
    actor: Actor,
    reservation_id: str,
    now: Optional[datetime] = None,
) -> Reservation:
    """Withdraw an ACTIVE reservation. Allowed to its creator and to approvers."""
    now = ensure_utc(now) or utc_now()
    with transaction(db):
        reservation = load_reservation(db, reservation_id)
        if reservation.reserved_by_user_id != actor.user_id:
            batch = ledger.load_batch(db, reservation.batch_id)
            require_capability(db, actor, batch, Capability.APPROVER)
        reservation = _close_and_release(
            db,
            reservation,
            ReservationStatus.CANCELLED,
            "cancel",
            now=now,
        )

    logger.info(
        "Reservation cancelled",
        extra={"batch_id": reservation.batch_id, "reservation_id": reservation_id, "actor_id": actor.user_id},
    )
    publish(_event(EventType.RESERVATION_CANCELLED, reservation, actor.user_id))
    return reservation


def expire_reservation(
    db: Session,
    reservation_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """Expire one reservation if it is ACTIVE and past due.

    Returns False, without error, when there is nothing to do: the
    reservation is terminal, approved, or not yet due.
    """
    now = ensure_utc(now) or utc_now()
    with transaction(db):
        reservation = load_reservation(db, reservation_id)
        moved = _transition(
            db,
            reservation_id,
            ReservationStatus.ACTIVE,
            ReservationStatus.EXPIRED,
            Reservation.expires_at < now,
            closed_at=now,
            now=now,
        )
        if not moved:
            logger.debug(
                "Expiry skipped (status=%s)",
                reservation.status,
                extra={"reservation_id": reservation_id},
            )
            return False
        ledger.release(db, reservation.batch_id, reservation.quantity_slabs)
        reservation = load_reservation(db, reservation_id)

    logger.info(
        "Reservation expired, %d slab(s) released",
        reservation.quantity_slabs,
        extra={"batch_id": reservation.batch_id, "reservation_id": reservation_id},
    )
    publish(_event(EventType.RESERVATION_EXPIRED, reservation))
    return True


def find_due_reservations(db: Session, now: datetime, limit: int) -> list[str]:
    return list(
        db.execute(
            select(Reservation.id)
            .where(
                Reservation.status == ReservationStatus.ACTIVE.value,
                Reservation.expires_at < now,
            )
            .order_by(Reservation.expires_at)
            .limit(limit)
        )
        .scalars()
        .all()
    )


def expire_due_reservations(
    db: Session,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> SweepResult:
    """Expire every due reservation, one transaction each.

    A failure on one reservation is logged and left for the next sweep.
    """
    now = ensure_utc(now) or utc_now()
    limit = limit or get_settings().EXPIRY_SWEEP_BATCH_SIZE
    due = find_due_reservations(db, now, limit)
    db.rollback()

    result = SweepResult(examined=len(due))
    for reservation_id in due:
        try:
            if expire_reservation(db, reservation_id, now=now):
                result.expired += 1
        except (DomainError, SQLAlchemyError):
            result.failed += 1
            logger.exception("Failed to expire reservation", extra={"reservation_id": reservation_id})

    if due:
        logger.info(
            "Expiry sweep: examined=%d expired=%d failed=%d",
            result.examined,
            result.expired,
            result.failed,
        )
    return result


def get_reservation(db: Session, actor: Actor, reservation_id: str) -> Reservation:
    reservation = load_reservation(db, reservation_id)
    if reservation.reserved_by_user_id == actor.user_id:
        return reservation
    batch = db.get(Batch, reservation.batch_id)
    if batch is not None and Capability.OWNER in capabilities_for(db, actor, batch):
        return reservation
    raise AuthorizationDenied(
        "User {} may not view reservation {}.".format(actor.user_id, reservation_id),
    )


def list_reservations(
    db: Session,
    actor: Actor,
    *,
    status: Optional[str] = None,
    batch_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Reservation]:
    """Administrators see their industry's reservations; everyone else their own."""
    stmt = select(Reservation)
    if actor.is_admin and actor.industry_id:
        stmt = stmt.where(Reservation.industry_id == actor.industry_id)
    else:
        stmt = stmt.where(Reservation.reserved_by_user_id == actor.user_id)
    if status:
        try:
            wanted = ReservationStatus(status.upper())
        except ValueError as exc:
            raise ValidationError("Unknown reservation status {!r}.".format(status)) from exc
        stmt = stmt.where(Reservation.status == wanted.value)
    if batch_id:
        stmt = stmt.where(Reservation.batch_id == batch_id)
    stmt = stmt.order_by(Reservation.created_at.desc()).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars().all())


__all__ = [
    "SweepResult",
    "approve_reservation",
    "cancel_reservation",
    "create_reservation",
    "expire_due_reservations",
    "expire_reservation",
    "find_due_reservations",
    "get_reservation",
    "list_reservations",
    "load_reservation",
    "reject_reservation",
]
