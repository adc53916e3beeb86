import logging
import re
from datetime import date
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from slabtrade.core.constants import (
    BATCH_CODE_PATTERN,
    MAX_SLAB_SIDE_CM,
    MAX_SLAB_THICKNESS_CM,
    BatchStatus,
    UserRole,
)
from slabtrade.core.dates import utc_now
from slabtrade.core.errors import (
    AuthorizationDenied,
    BatchCodeExists,
    ConcurrentUpdate,
    DomainError,
    InvariantViolation,
    ValidationError,
)
from slabtrade.database.session import transaction
from slabtrade.models.batch import Batch
from slabtrade.models.user import User
from slabtrade.schemas.batch import BatchCreate, BatchUpdate
from slabtrade.services import ledger
from slabtrade.services.authorization import Actor, Capability, require_capability
from slabtrade.services.ledger import derive_status, load_batch
from slabtrade.services.pricing import batch_area_m2, parse_unit, to_decimal
from slabtrade.services.sharing_service import grant_batch

logger = logging.getLogger(__name__)

_BATCH_CODE_RE = re.compile(BATCH_CODE_PATTERN)


def normalize_batch_code(value: str) -> str:
    code = (value or "").strip().upper()
    if not _BATCH_CODE_RE.match(code):
        raise ValidationError(
            "Invalid batch code {!r}. Expected format AAA-999999.".format(value),
            {"batch_code": value},
        )
    return code


def _check_dimension(name: str, value, limit):
    value = to_decimal(value)
    if value <= 0 or value > limit:
        raise ValidationError(
            "{} must be greater than 0 and at most {} cm.".format(name.capitalize(), limit),
            {name: str(value)},
        )
    return value


def _check_positive_price(value):
    value = to_decimal(value)
    if value <= 0:
        raise ValidationError("Unit price must be greater than zero.", {"unit_price": str(value)})
    return value


def _check_entry_date(value: date) -> date:
    if value > utc_now().date():
        raise ValidationError("Entry date cannot be in the future.", {"entry_date": value.isoformat()})
    return value


def _code_taken(db: Session, industry_id: str, code: str, exclude_id: Optional[str] = None) -> bool:
    stmt = select(Batch.id).where(Batch.industry_id == industry_id, Batch.batch_code == code)
    if exclude_id:
        stmt = stmt.where(Batch.id != exclude_id)
    return db.execute(stmt).first() is not None


def _require_admin_of(actor: Actor) -> str:
    if not actor.is_admin or not actor.industry_id:
        raise AuthorizationDenied(
            "Only an industry administrator can manage batches.",
            {"required": ["ADMIN_INDUSTRIA"]},
        )
    return actor.industry_id


def create_batch(db: Session, actor: Actor, payload: BatchCreate) -> Batch:
    """Register a batch with every slab available, then share it with the
    industry's internal sellers."""
    industry_id = _require_admin_of(actor)
    code = normalize_batch_code(payload.batch_code)
    height = _check_dimension("height", payload.height, MAX_SLAB_SIDE_CM)
    width = _check_dimension("width", payload.width, MAX_SLAB_SIDE_CM)
    thickness = _check_dimension("thickness", payload.thickness, MAX_SLAB_THICKNESS_CM)
    if payload.total_slabs <= 0:
        raise ValidationError("Total slabs must be greater than zero.", {"total_slabs": payload.total_slabs})
    unit_price = _check_positive_price(payload.unit_price)
    price_unit = parse_unit(payload.price_unit)
    entry_date = _check_entry_date(payload.entry_date)

    with transaction(db):
        if _code_taken(db, industry_id, code):
            raise BatchCodeExists(
                "Batch code {} already exists for this industry.".format(code),
                {"batch_code": code},
            )
        batch = Batch(
            industry_id=industry_id,
            product_id=payload.product_id,
            batch_code=code,
            height=height,
            width=width,
            thickness=thickness,
            total_slabs=payload.total_slabs,
            available_slabs=payload.total_slabs,
            reserved_slabs=0,
            sold_slabs=0,
            inactive_slabs=0,
            total_area=batch_area_m2(height, width, payload.total_slabs),
            unit_price=unit_price,
            price_unit=price_unit.value,
            origin_quarry=payload.origin_quarry,
            entry_date=entry_date,
            status=BatchStatus.AVAILABLE.value,
            is_active=True,
        )
        db.add(batch)
        try:
            db.flush()
        except IntegrityError as exc:
            raise BatchCodeExists(
                "Batch code {} already exists for this industry.".format(code),
                {"batch_code": code},
            ) from exc
        ledger.verify(batch)

    logger.info(
        "Batch %s created: %d slab(s), %s m2 at %s/%s",
        code,
        batch.total_slabs,
        batch.total_area,
        batch.unit_price,
        batch.price_unit,
        extra={"batch_id": batch.id, "industry_id": industry_id, "actor_id": actor.user_id},
    )
    share_with_internal_sellers(db, batch)
    return batch


def share_with_internal_sellers(db: Session, batch: Batch) -> int:
    """Grant the batch to every active internal seller of its industry.

    Runs after the batch is committed; a failure here is logged and leaves
    the batch in place.
    """
    sellers = (
        db.execute(
            select(User).where(
                User.industry_id == batch.industry_id,
                User.role == UserRole.VENDEDOR_INTERNO.value,
                User.is_active.is_(True),
            )
        )
        .scalars()
        .all()
    )
    if not sellers:
        logger.debug("No internal sellers to share with", extra={"batch_id": batch.id})
        return 0

    shared = 0
    for seller in sellers:
        try:
            with transaction(db):
                grant_batch(db, batch, seller)
            shared += 1
        except (DomainError, SQLAlchemyError):
            logger.exception(
                "Automatic share with internal seller %s failed",
                seller.id,
                extra={"batch_id": batch.id},
            )
    logger.info("Batch shared with %d internal seller(s)", shared, extra={"batch_id": batch.id})
    return shared


def update_batch(db: Session, actor: Actor, batch_id: str, payload: BatchUpdate) -> Batch:
    """Correct a batch's description, price or size.

    A new ``total_slabs`` moves the difference in or out of the available
    pool and may not drop below the slabs already reserved, sold or inactive.
    The counter write is conditional on the values read here, so a reservation
    landing in between turns the correction into a conflict instead of a
    lost update.
    """
    with transaction(db):
        batch = load_batch(db, batch_id)
        require_capability(db, actor, batch, Capability.APPROVER)

        values = {}
        if payload.batch_code is not None:
            code = normalize_batch_code(payload.batch_code)
            if code != batch.batch_code and _code_taken(db, batch.industry_id, code, exclude_id=batch.id):
                raise BatchCodeExists(
                    "Batch code {} already exists for this industry.".format(code),
                    {"batch_code": code},
                )
            values["batch_code"] = code
        if payload.height is not None:
            values["height"] = _check_dimension("height", payload.height, MAX_SLAB_SIDE_CM)
        if payload.width is not None:
            values["width"] = _check_dimension("width", payload.width, MAX_SLAB_SIDE_CM)
        if payload.thickness is not None:
            values["thickness"] = _check_dimension("thickness", payload.thickness, MAX_SLAB_THICKNESS_CM)
        if payload.unit_price is not None:
            values["unit_price"] = _check_positive_price(payload.unit_price)
        if payload.price_unit is not None:
            values["price_unit"] = parse_unit(payload.price_unit).value
        if payload.origin_quarry is not None:
            values["origin_quarry"] = payload.origin_quarry

        total = batch.total_slabs
        guard = []
        if payload.total_slabs is not None and payload.total_slabs != batch.total_slabs:
            total = payload.total_slabs
            committed = batch.reserved_slabs + batch.sold_slabs + batch.inactive_slabs
            if total <= 0 or total < committed:
                raise ValidationError(
                    "Total slabs cannot be lower than the {} slab(s) already reserved, sold or inactive.".format(
                        committed
                    ),
                    {"total_slabs": total, "committed": committed},
                )
            available = total - committed
            values["total_slabs"] = total
            values["available_slabs"] = available
            values["status"] = derive_status(available, batch.reserved_slabs, batch.sold_slabs, total, batch.status)
            guard = [
                Batch.available_slabs == batch.available_slabs,
                Batch.reserved_slabs == batch.reserved_slabs,
                Batch.sold_slabs == batch.sold_slabs,
                Batch.inactive_slabs == batch.inactive_slabs,
            ]

        if {"height", "width", "total_slabs"} & values.keys():
            values["total_area"] = batch_area_m2(
                values.get("height", batch.height),
                values.get("width", batch.width),
                total,
            )

        if not values:
            return batch

        values["updated_at"] = utc_now()
        try:
            result = db.execute(
                update(Batch)
                .where(and_(Batch.id == batch_id, *guard))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            raise InvariantViolation(
                "Batch update on {} violated a constraint.".format(batch_id),
                {"batch_id": batch_id},
            ) from exc
        if result.rowcount != 1:
            raise ConcurrentUpdate(
                "Batch {} changed while it was being edited; reload and retry.".format(batch_id),
                {"batch_id": batch_id},
            )
        batch = ledger.verify(load_batch(db, batch_id))

    logger.info(
        "Batch updated: %s",
        ",".join(sorted(name for name in values if name != "updated_at")),
        extra={"batch_id": batch_id, "actor_id": actor.user_id},
    )
    return batch


def adjust_availability(
    db: Session,
    actor: Actor,
    batch_id: str,
    quantity: int,
    target: BatchStatus,
) -> Batch:
    """Move slabs between the available and inactive pools."""
    try:
        target = BatchStatus(target)
    except ValueError as exc:
        raise ValidationError("Unknown availability target {!r}.".format(target)) from exc
    with transaction(db):
        batch = load_batch(db, batch_id)
        require_capability(db, actor, batch, Capability.APPROVER)
        if target == BatchStatus.INACTIVE:
            batch = ledger.deactivate(db, batch_id, quantity)
        elif target == BatchStatus.AVAILABLE:
            batch = ledger.reactivate(db, batch_id, quantity)
        else:
            raise ValidationError(
                "Availability can only move slabs to AVAILABLE or INACTIVE.",
                {"target": target.value},
            )

    logger.info(
        "Availability adjusted: %d slab(s) -> %s",
        quantity,
        target.value,
        extra={"batch_id": batch_id, "actor_id": actor.user_id},
    )
    return batch


def archive_batch(db: Session, actor: Actor, batch_id: str) -> Batch:
    with transaction(db):
        batch = load_batch(db, batch_id)
        require_capability(db, actor, batch, Capability.APPROVER)
        if not batch.is_active:
            raise ValidationError("Batch {} is already archived.".format(batch_id))
        result = db.execute(
            update(Batch)
            .where(Batch.id == batch_id, Batch.reserved_slabs == 0, Batch.is_active.is_(True))
            .values(is_active=False, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            batch = load_batch(db, batch_id)
            raise ValidationError(
                "Batch {} has {} reserved slab(s) and cannot be archived.".format(batch_id, batch.reserved_slabs),
                {"reserved_slabs": batch.reserved_slabs},
            )
        batch = load_batch(db, batch_id)

    logger.info("Batch archived", extra={"batch_id": batch_id, "actor_id": actor.user_id})
    return batch


def restore_batch(db: Session, actor: Actor, batch_id: str) -> Batch:
    with transaction(db):
        batch = load_batch(db, batch_id)
        require_capability(db, actor, batch, Capability.APPROVER)
        if batch.is_active:
            raise ValidationError("Batch {} is not archived.".format(batch_id))
        batch.is_active = True
        batch.updated_at = utc_now()

    logger.info("Batch restored", extra={"batch_id": batch_id, "actor_id": actor.user_id})
    return batch


def get_batch(db: Session, actor: Actor, batch_id: str) -> Batch:
    batch = load_batch(db, batch_id)
    require_capability(db, actor, batch, Capability.OWNER, Capability.GRANTEE)
    return batch


def list_batches(
    db: Session,
    actor: Actor,
    *,
    status: Optional[str] = None,
    code: Optional[str] = None,
    include_archived: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Batch], int]:
    """Batches of the actor's own industry, newest first, with the total count."""
    if not actor.industry_id:
        raise AuthorizationDenied("Only industry users can list industry batches.")

    stmt = select(Batch).where(Batch.industry_id == actor.industry_id, Batch.deleted_at.is_(None))
    if not include_archived:
        stmt = stmt.where(Batch.is_active.is_(True))
    if status:
        try:
            wanted = BatchStatus(status.upper())
        except ValueError as exc:
            raise ValidationError("Unknown batch status {!r}.".format(status)) from exc
        stmt = stmt.where(Batch.status == wanted.value)
    if code:
        stmt = stmt.where(Batch.batch_code.contains(code.strip().upper()))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    items = db.execute(stmt.order_by(Batch.created_at.desc()).limit(limit).offset(offset)).scalars().all()
    return list(items), int(total)


__all__ = [
    "adjust_availability",
    "archive_batch",
    "create_batch",
    "get_batch",
    "list_batches",
    "normalize_batch_code",
    "restore_batch",
    "share_with_internal_sellers",
    "update_batch",
]
