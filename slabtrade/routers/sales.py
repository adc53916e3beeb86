from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from slabtrade.dependencies import get_actor, get_db
from slabtrade.schemas.sale import SaleConfirm, SaleRead, SalesSummaryRead
from slabtrade.services.authorization import Actor
from slabtrade.services.sale_service import confirm_sale, get_sale, list_sales, summarize_sales

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.post("", response_model=SaleRead, status_code=201)
def confirm(payload: SaleConfirm, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return confirm_sale(
        db,
        actor,
        payload.reservation_id,
        payload.quantity_slabs,
        payload.final_price,
        invoice_ref=payload.invoice_ref,
        notes=payload.notes,
    )


@router.get("", response_model=List[SaleRead])
def sales_history(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    seller_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return list_sales(db, actor, start=start, end=end, seller_id=seller_id, limit=limit, offset=offset)


@router.get("/summary", response_model=SalesSummaryRead)
def sales_summary(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    seller_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return summarize_sales(db, actor, start=start, end=end, seller_id=seller_id)


@router.get("/{sale_id}", response_model=SaleRead)
def read_sale(sale_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return get_sale(db, actor, sale_id)


__all__ = ["router"]
