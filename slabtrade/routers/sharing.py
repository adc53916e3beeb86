from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from slabtrade.dependencies import get_actor, get_db
from slabtrade.schemas.batch import BatchRead
from slabtrade.schemas.sharing import (
    CatalogPermissionRead,
    GrantRead,
    NegotiatedPriceUpdate,
    ShareBatchRequest,
    ShareCatalogRequest,
    SharedBatchRead,
)
from slabtrade.services.authorization import Actor
from slabtrade.services.sharing_service import (
    list_broker_inventory,
    list_grants_for_batch,
    revoke_batch_share,
    revoke_catalog,
    share_batch,
    share_catalog,
    update_negotiated_price,
)

router = APIRouter(prefix="/sharing", tags=["Sharing"])


@router.post("/batches", response_model=GrantRead, status_code=201)
def share(payload: ShareBatchRequest, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return share_batch(
        db,
        actor,
        payload.batch_id,
        payload.user_id,
        negotiated_price=payload.negotiated_price,
        negotiated_price_unit=payload.negotiated_price_unit,
    )


@router.get("/batches/{batch_id}", response_model=List[GrantRead])
def grants_for_batch(
    batch_id: str,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return list_grants_for_batch(db, actor, batch_id, include_inactive=include_inactive)


@router.patch("/grants/{grant_id}", response_model=GrantRead)
def set_negotiated_price(
    grant_id: str,
    payload: NegotiatedPriceUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return update_negotiated_price(
        db,
        actor,
        grant_id,
        payload.negotiated_price,
        payload.negotiated_price_unit,
    )


@router.delete("/grants/{grant_id}", response_model=GrantRead)
def revoke(grant_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return revoke_batch_share(db, actor, grant_id)


@router.get("/inventory", response_model=List[SharedBatchRead])
def my_shared_inventory(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    rows = []
    for item in list_broker_inventory(db, actor.user_id):
        rows.append(
            SharedBatchRead(
                batch=BatchRead.model_validate(item.batch),
                price=item.price.price if item.show_price else None,
                price_unit=item.price.unit,
                negotiated=item.price.negotiated,
                grant_id=item.grant_id,
                via_catalog=item.via_catalog,
            )
        )
    return rows


@router.post("/catalog", response_model=CatalogPermissionRead, status_code=201)
def share_whole_catalog(
    payload: ShareCatalogRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return share_catalog(db, actor, payload.broker_user_id, payload.can_show_prices)


@router.delete("/catalog/{broker_user_id}", response_model=CatalogPermissionRead)
def revoke_whole_catalog(broker_user_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return revoke_catalog(db, actor, broker_user_id)


__all__ = ["router"]
