from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from slabtrade.dependencies import get_actor, get_db
from slabtrade.schemas.batch import AvailabilityAdjust, BatchCreate, BatchList, BatchRead, BatchUpdate
from slabtrade.services.authorization import Actor
from slabtrade.services.batch_service import (
    adjust_availability,
    archive_batch,
    create_batch,
    get_batch,
    list_batches,
    restore_batch,
    update_batch,
)

router = APIRouter(prefix="/batches", tags=["Batches"])


@router.get("", response_model=BatchList)
def list_industry_batches(
    status: Optional[str] = Query(None, description="AVAILABLE, RESERVED, SOLD or INACTIVE"),
    code: Optional[str] = Query(None, description="Partial batch code"),
    include_archived: bool = False,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    items, total = list_batches(
        db,
        actor,
        status=status,
        code=code,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
    )
    return BatchList(items=[BatchRead.model_validate(batch) for batch in items], total=total)


@router.post("", response_model=BatchRead, status_code=201)
def create_industry_batch(
    payload: BatchCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return create_batch(db, actor, payload)


@router.get("/{batch_id}", response_model=BatchRead)
def read_batch(batch_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return get_batch(db, actor, batch_id)


@router.patch("/{batch_id}", response_model=BatchRead)
def patch_batch(
    batch_id: str,
    payload: BatchUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return update_batch(db, actor, batch_id, payload)


@router.post("/{batch_id}/availability", response_model=BatchRead)
def move_availability(
    batch_id: str,
    payload: AvailabilityAdjust,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return adjust_availability(db, actor, batch_id, payload.quantity, payload.target)


@router.post("/{batch_id}/archive", response_model=BatchRead)
def archive(batch_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return archive_batch(db, actor, batch_id)


@router.post("/{batch_id}/restore", response_model=BatchRead)
def restore(batch_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return restore_batch(db, actor, batch_id)


__all__ = ["router"]
