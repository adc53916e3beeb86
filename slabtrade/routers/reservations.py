from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from slabtrade.dependencies import get_actor, get_db
from slabtrade.schemas.reservation import ReservationCreate, ReservationRead, ReservationReject
from slabtrade.services.authorization import Actor
from slabtrade.services.reservation_service import (
    approve_reservation,
    cancel_reservation,
    create_reservation,
    get_reservation,
    list_reservations,
    reject_reservation,
)

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.get("", response_model=List[ReservationRead])
def list_visible_reservations(
    status: Optional[str] = Query(None),
    batch_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return list_reservations(db, actor, status=status, batch_id=batch_id, limit=limit, offset=offset)


@router.post("", response_model=ReservationRead, status_code=201)
def reserve_slabs(
    payload: ReservationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return create_reservation(
        db,
        actor,
        payload.batch_id,
        payload.quantity_slabs,
        price=payload.reserved_price,
        price_unit=payload.reserved_price_unit,
        expires_at=payload.expires_at,
        customer_name=payload.customer_name,
        customer_contact=payload.customer_contact,
        notes=payload.notes,
    )


@router.get("/{reservation_id}", response_model=ReservationRead)
def read_reservation(reservation_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return get_reservation(db, actor, reservation_id)


@router.post("/{reservation_id}/approve", response_model=ReservationRead)
def approve(reservation_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return approve_reservation(db, actor, reservation_id)


@router.post("/{reservation_id}/reject", response_model=ReservationRead)
def reject(
    reservation_id: str,
    payload: ReservationReject,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return reject_reservation(db, actor, reservation_id, reason=payload.reason)


@router.post("/{reservation_id}/cancel", response_model=ReservationRead)
def cancel(reservation_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return cancel_reservation(db, actor, reservation_id)


__all__ = ["router"]
