"""
Quantity ledger for slab batches.

Each batch's ``total_slabs`` is partitioned into available, reserved, sold
and inactive counters. This module is the only writer of those counters.
Every movement is a single conditional UPDATE whose WHERE clause guards the
source counter, so concurrent callers cannot both take the same slabs: the
second statement to run sees the already-decremented row and matches
nothing. The summary ``status`` column is recomputed inside the same
statement from the new counter values.

Functions here never commit; the calling service owns the transaction.
"""

import logging

from sqlalchemy import and_, case, literal, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slabtrade.core.constants import BatchStatus
from slabtrade.core.errors import (
    BatchNotAvailable,
    BatchNotFound,
    InsufficientStock,
    InvariantViolation,
    ValidationError,
)
from slabtrade.models.batch import Batch

logger = logging.getLogger(__name__)

_COUNTERS = ("available_slabs", "reserved_slabs", "sold_slabs", "inactive_slabs")


_DERIVED_STATUSES = (BatchStatus.AVAILABLE.value, BatchStatus.RESERVED.value)


def derive_status(available: int, reserved: int, sold: int, total: int, current: str) -> str:
    """Summary status for a counter state.

    With nothing available or reserved and not everything sold, part of the
    stock is inactive. An explicit status is kept then; a derived one that
    the counters now contradict collapses to INACTIVE.
    """
    if available > 0:
        return BatchStatus.AVAILABLE.value
    if reserved > 0:
        return BatchStatus.RESERVED.value
    if sold == total:
        return BatchStatus.SOLD.value
    if current in _DERIVED_STATUSES:
        return BatchStatus.INACTIVE.value
    return current


def verify(batch: Batch) -> Batch:
    counters = [getattr(batch, name) for name in _COUNTERS]
    if any(value is None or value < 0 for value in counters) or sum(counters) != batch.total_slabs:
        logger.error(
            "Slab partition broken: total=%s counters=%s",
            batch.total_slabs,
            dict(zip(_COUNTERS, counters)),
            extra={"batch_id": batch.id},
        )
        raise InvariantViolation(
            "Slab counters of batch {} do not add up to its total.".format(batch.id),
            {"batch_id": batch.id, "total_slabs": batch.total_slabs, **dict(zip(_COUNTERS, counters))},
        )
    return batch


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Slab quantity must be a positive integer.", {"quantity": quantity})
    return quantity


def _status_expression(new_available, new_reserved, new_sold):
    """SQL mirror of ``derive_status`` over the post-update counter values."""
    return case(
        (new_available > 0, literal(BatchStatus.AVAILABLE.value)),
        (new_reserved > 0, literal(BatchStatus.RESERVED.value)),
        (new_sold == Batch.total_slabs, literal(BatchStatus.SOLD.value)),
        (Batch.status.in_(_DERIVED_STATUSES), literal(BatchStatus.INACTIVE.value)),
        else_=Batch.status,
    )


def _move(
    db: Session,
    batch_id: str,
    quantity: int,
    *,
    deltas: dict,
    guard,
) -> bool:
    new_values = {
        name: getattr(Batch, name) + deltas.get(name, 0)
        for name in _COUNTERS
    }
    status_expr = _status_expression(
        new_values["available_slabs"],
        new_values["reserved_slabs"],
        new_values["sold_slabs"],
    )
    stmt = (
        update(Batch)
        .where(Batch.id == batch_id, guard)
        .values(status=status_expr, **new_values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
    except IntegrityError as exc:
        logger.error("Ledger update rejected by constraint", extra={"batch_id": batch_id})
        raise InvariantViolation(
            "Ledger update on batch {} violated a slab constraint.".format(batch_id),
            {"batch_id": batch_id, "quantity": quantity},
        ) from exc
    return result.rowcount == 1


def _reload(db: Session, batch_id: str):
    return db.get(Batch, batch_id, populate_existing=True)


def load_batch(db: Session, batch_id: str) -> Batch:
    batch = _reload(db, batch_id)
    if batch is None:
        raise BatchNotFound(batch_id)
    return batch


def _finish(db: Session, batch_id: str, operation: str, quantity: int) -> Batch:
    batch = verify(load_batch(db, batch_id))
    logger.info(
        "Ledger %s of %d slab(s): available=%d reserved=%d sold=%d inactive=%d status=%s",
        operation,
        quantity,
        batch.available_slabs,
        batch.reserved_slabs,
        batch.sold_slabs,
        batch.inactive_slabs,
        batch.status,
        extra={"batch_id": batch_id},
    )
    return batch


def _counter_violation(db: Session, batch_id: str, operation: str, counter: str, quantity: int):
    batch = load_batch(db, batch_id)
    held = getattr(batch, counter)
    logger.error(
        "Ledger %s of %d slab(s) exceeds %s=%d",
        operation,
        quantity,
        counter,
        held,
        extra={"batch_id": batch_id},
    )
    return InvariantViolation(
        "Cannot {} {} slab(s) of batch {}: only {} {}.".format(
            operation, quantity, batch_id, held, counter.replace("_slabs", "")
        ),
        {"batch_id": batch_id, "quantity": quantity, counter: held},
    )


def reserve(db: Session, batch_id: str, quantity: int) -> Batch:
    """Move ``quantity`` slabs from available to reserved."""
    quantity = _require_quantity(quantity)
    moved = _move(
        db,
        batch_id,
        quantity,
        deltas={"available_slabs": -quantity, "reserved_slabs": quantity},
        guard=and_(
            Batch.available_slabs >= quantity,
            Batch.is_active.is_(True),
            Batch.deleted_at.is_(None),
        ),
    )
    if moved:
        return _finish(db, batch_id, "reserve", quantity)

    batch = load_batch(db, batch_id)
    if not batch.is_active or batch.deleted_at is not None:
        raise BatchNotAvailable(
            "Batch {} is not open for reservations.".format(batch_id),
            {"batch_id": batch_id},
        )
    logger.warning(
        "Insufficient stock: requested=%d available=%d",
        quantity,
        batch.available_slabs,
        extra={"batch_id": batch_id},
    )
    raise InsufficientStock(quantity, batch.available_slabs)


def release(db: Session, batch_id: str, quantity: int) -> Batch:
    """Move ``quantity`` slabs from reserved back to available."""
    quantity = _require_quantity(quantity)
    moved = _move(
        db,
        batch_id,
        quantity,
        deltas={"reserved_slabs": -quantity, "available_slabs": quantity},
        guard=Batch.reserved_slabs >= quantity,
    )
    if not moved:
        raise _counter_violation(db, batch_id, "release", "reserved_slabs", quantity)
    return _finish(db, batch_id, "release", quantity)


def convert_to_sold(db: Session, batch_id: str, quantity: int) -> Batch:
    """Move ``quantity`` slabs from reserved to sold."""
    quantity = _require_quantity(quantity)
    moved = _move(
        db,
        batch_id,
        quantity,
        deltas={"reserved_slabs": -quantity, "sold_slabs": quantity},
        guard=Batch.reserved_slabs >= quantity,
    )
    if not moved:
        raise _counter_violation(db, batch_id, "sell", "reserved_slabs", quantity)
    return _finish(db, batch_id, "convert_to_sold", quantity)


def deactivate(db: Session, batch_id: str, quantity: int) -> Batch:
    """Set aside available slabs (damaged, withheld) into the inactive bucket."""
    quantity = _require_quantity(quantity)
    moved = _move(
        db,
        batch_id,
        quantity,
        deltas={"available_slabs": -quantity, "inactive_slabs": quantity},
        guard=Batch.available_slabs >= quantity,
    )
    if not moved:
        batch = load_batch(db, batch_id)
        raise InsufficientStock(quantity, batch.available_slabs)
    return _finish(db, batch_id, "deactivate", quantity)


def reactivate(db: Session, batch_id: str, quantity: int) -> Batch:
    """Return inactive slabs to the available pool."""
    quantity = _require_quantity(quantity)
    moved = _move(
        db,
        batch_id,
        quantity,
        deltas={"inactive_slabs": -quantity, "available_slabs": quantity},
        guard=Batch.inactive_slabs >= quantity,
    )
    if not moved:
        raise _counter_violation(db, batch_id, "reactivate", "inactive_slabs", quantity)
    return _finish(db, batch_id, "reactivate", quantity)


__all__ = [
    "convert_to_sold",
    "deactivate",
    "derive_status",
    "load_batch",
    "reactivate",
    "release",
    "reserve",
    "verify",
]
