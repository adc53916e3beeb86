"""
Sharing registry: batch grants and whole-catalog grants.

A grant is a capability, not a transfer of ownership. Quantities always stay
in the owning industry's ledger; a grant only decides who may reserve from a
batch and at which price.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slabtrade.core.constants import PriceUnit, UserRole
from slabtrade.core.dates import utc_now
from slabtrade.core.errors import (
    AuthorizationDenied,
    GrantConflict,
    GrantNotFound,
    UserNotFound,
    ValidationError,
)
from slabtrade.database.session import transaction
from slabtrade.models.batch import Batch
from slabtrade.models.shared_inventory import SharedCatalogPermission, SharedInventoryBatch
from slabtrade.models.user import User
from slabtrade.services.authorization import (
    Actor,
    Capability,
    find_active_grant,
    find_catalog_permission,
    require_capability,
)
from slabtrade.services.ledger import load_batch
from slabtrade.services.pricing import ApplicablePrice, parse_unit, resolve_applicable_price, to_decimal

logger = logging.getLogger(__name__)

_GRANTEE_ROLES = (UserRole.BROKER.value, UserRole.VENDEDOR_INTERNO.value)


@dataclass
class BrokerInventoryItem:
    batch: Batch
    price: ApplicablePrice
    grant_id: Optional[str] = None
    via_catalog: bool = False
    show_price: bool = True


def _load_grantee(db: Session, user_id: str, roles=_GRANTEE_ROLES) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    if not user.is_active:
        raise ValidationError("User {} is inactive.".format(user_id), {"user_id": user_id})
    if user.role not in roles:
        raise ValidationError(
            "User {} cannot receive shared inventory (role {}).".format(user_id, user.role),
            {"user_id": user_id, "role": user.role},
        )
    return user


def _validate_negotiated_price(price, unit):
    if price is None:
        return None, parse_unit(unit or PriceUnit.M2)
    price = to_decimal(price)
    if price <= 0:
        raise ValidationError("Negotiated price must be greater than zero.", {"negotiated_price": str(price)})
    return price, parse_unit(unit or PriceUnit.M2)


def _load_grant(db: Session, grant_id: str) -> SharedInventoryBatch:
    grant = db.get(SharedInventoryBatch, grant_id)
    if grant is None:
        raise GrantNotFound(grant_id)
    return grant


def grant_batch(
    db: Session,
    batch: Batch,
    grantee: User,
    negotiated_price=None,
    negotiated_price_unit=None,
) -> SharedInventoryBatch:
    """Add or reactivate a grant inside the caller's transaction."""
    price, unit = _validate_negotiated_price(negotiated_price, negotiated_price_unit)
    existing = (
        db.execute(
            select(SharedInventoryBatch).where(
                SharedInventoryBatch.batch_id == batch.id,
                SharedInventoryBatch.shared_with_user_id == grantee.id,
            )
        )
        .scalars()
        .first()
    )
    if existing is not None:
        if existing.is_active:
            raise GrantConflict(
                "Batch {} is already shared with user {}.".format(batch.id, grantee.id),
                {"grant_id": existing.id},
            )
        existing.is_active = True
        existing.negotiated_price = price
        existing.negotiated_price_unit = unit.value
        existing.shared_at = utc_now()
        db.flush()
        return existing

    grant = SharedInventoryBatch(
        batch_id=batch.id,
        shared_with_user_id=grantee.id,
        industry_owner_id=batch.industry_id,
        negotiated_price=price,
        negotiated_price_unit=unit.value,
        shared_at=utc_now(),
        is_active=True,
    )
    db.add(grant)
    try:
        db.flush()
    except IntegrityError as exc:
        raise GrantConflict(
            "Batch {} is already shared with user {}.".format(batch.id, grantee.id),
        ) from exc
    return grant


def share_batch(
    db: Session,
    actor: Actor,
    batch_id: str,
    grantee_user_id: str,
    negotiated_price=None,
    negotiated_price_unit=None,
) -> SharedInventoryBatch:
    with transaction(db):
        batch = load_batch(db, batch_id)
        require_capability(db, actor, batch, Capability.OWNER)
        grantee = _load_grantee(db, grantee_user_id)
        grant = grant_batch(db, batch, grantee, negotiated_price, negotiated_price_unit)

    logger.info(
        "Batch shared with %s (negotiated=%s %s)",
        grantee_user_id,
        grant.negotiated_price,
        grant.negotiated_price_unit,
        extra={"batch_id": batch_id, "grant_id": grant.id, "actor_id": actor.user_id},
    )
    return grant


def revoke_batch_share(db: Session, actor: Actor, grant_id: str) -> SharedInventoryBatch:
    with transaction(db):
        grant = _load_grant(db, grant_id)
        batch = load_batch(db, grant.batch_id)
        require_capability(db, actor, batch, Capability.OWNER)
        grant.is_active = False

    logger.info(
        "Batch share revoked for %s",
        grant.shared_with_user_id,
        extra={"batch_id": grant.batch_id, "grant_id": grant_id, "actor_id": actor.user_id},
    )
    return grant


def update_negotiated_price(
    db: Session,
    actor: Actor,
    grant_id: str,
    price,
    unit=None,
) -> SharedInventoryBatch:
    """Change (or clear, with ``price=None``) the price a grantee pays."""
    with transaction(db):
        grant = _load_grant(db, grant_id)
        if not grant.is_active:
            raise GrantNotFound(grant_id)
        batch = load_batch(db, grant.batch_id)
        require_capability(db, actor, batch, Capability.OWNER)
        new_price, new_unit = _validate_negotiated_price(price, unit)
        grant.negotiated_price = new_price
        grant.negotiated_price_unit = new_unit.value

    logger.info(
        "Negotiated price set to %s %s",
        grant.negotiated_price,
        grant.negotiated_price_unit,
        extra={"batch_id": grant.batch_id, "grant_id": grant_id, "actor_id": actor.user_id},
    )
    return grant


def list_grants_for_batch(
    db: Session,
    actor: Actor,
    batch_id: str,
    *,
    include_inactive: bool = False,
) -> list[SharedInventoryBatch]:
    batch = load_batch(db, batch_id)
    require_capability(db, actor, batch, Capability.OWNER)
    stmt = select(SharedInventoryBatch).where(SharedInventoryBatch.batch_id == batch_id)
    if not include_inactive:
        stmt = stmt.where(SharedInventoryBatch.is_active.is_(True))
    return list(db.execute(stmt.order_by(SharedInventoryBatch.shared_at)).scalars().all())


def list_broker_inventory(db: Session, user_id: str) -> list[BrokerInventoryItem]:
    """Batches a user can sell through grants, each with the price that applies.

    A direct batch grant wins over a catalog grant for the same batch.
    """
    open_batch = (
        Batch.is_active.is_(True),
        Batch.deleted_at.is_(None),
        Batch.available_slabs > 0,
    )
    items: dict[str, BrokerInventoryItem] = {}

    rows = db.execute(
        select(SharedInventoryBatch, Batch)
        .join(Batch, Batch.id == SharedInventoryBatch.batch_id)
        .where(
            SharedInventoryBatch.shared_with_user_id == user_id,
            SharedInventoryBatch.is_active.is_(True),
            *open_batch,
        )
        .order_by(Batch.created_at.desc())
    ).all()
    for grant, batch in rows:
        items[batch.id] = BrokerInventoryItem(
            batch=batch,
            price=resolve_applicable_price(batch, grant),
            grant_id=grant.id,
        )

    permissions = (
        db.execute(
            select(SharedCatalogPermission).where(
                SharedCatalogPermission.broker_user_id == user_id,
                SharedCatalogPermission.is_active.is_(True),
            )
        )
        .scalars()
        .all()
    )
    for permission in permissions:
        batches = (
            db.execute(
                select(Batch)
                .where(Batch.industry_id == permission.industry_id, *open_batch)
                .order_by(Batch.created_at.desc())
            )
            .scalars()
            .all()
        )
        for batch in batches:
            if batch.id in items:
                continue
            items[batch.id] = BrokerInventoryItem(
                batch=batch,
                price=resolve_applicable_price(batch),
                via_catalog=True,
                show_price=bool(permission.can_show_prices),
            )

    return list(items.values())


def _require_industry_admin(actor: Actor) -> str:
    if not actor.is_admin or not actor.industry_id:
        raise AuthorizationDenied(
            "Only an industry administrator can manage catalog access.",
            {"required": ["ADMIN_INDUSTRIA"]},
        )
    return actor.industry_id


def share_catalog(
    db: Session,
    actor: Actor,
    broker_user_id: str,
    can_show_prices: bool = False,
) -> SharedCatalogPermission:
    industry_id = _require_industry_admin(actor)
    with transaction(db):
        _load_grantee(db, broker_user_id, roles=(UserRole.BROKER.value,))
        existing = (
            db.execute(
                select(SharedCatalogPermission).where(
                    SharedCatalogPermission.industry_id == industry_id,
                    SharedCatalogPermission.broker_user_id == broker_user_id,
                )
            )
            .scalars()
            .first()
        )
        if existing is not None and existing.is_active:
            raise GrantConflict(
                "Catalog is already shared with broker {}.".format(broker_user_id),
                {"permission_id": existing.id},
            )
        if existing is not None:
            permission = existing
            permission.is_active = True
            permission.can_show_prices = can_show_prices
            permission.granted_at = utc_now()
        else:
            permission = SharedCatalogPermission(
                industry_id=industry_id,
                broker_user_id=broker_user_id,
                can_show_prices=can_show_prices,
                granted_at=utc_now(),
                is_active=True,
            )
            db.add(permission)
        try:
            db.flush()
        except IntegrityError as exc:
            raise GrantConflict(
                "Catalog is already shared with broker {}.".format(broker_user_id),
            ) from exc

    logger.info(
        "Catalog shared with broker %s (prices visible: %s)",
        broker_user_id,
        can_show_prices,
        extra={"industry_id": industry_id, "actor_id": actor.user_id},
    )
    return permission


def revoke_catalog(db: Session, actor: Actor, broker_user_id: str) -> SharedCatalogPermission:
    industry_id = _require_industry_admin(actor)
    with transaction(db):
        permission = find_catalog_permission(db, industry_id, broker_user_id)
        if permission is None:
            raise GrantNotFound("{}:{}".format(industry_id, broker_user_id))
        permission.is_active = False

    logger.info(
        "Catalog access revoked for broker %s",
        broker_user_id,
        extra={"industry_id": industry_id, "actor_id": actor.user_id},
    )
    return permission


__all__ = [
    "BrokerInventoryItem",
    "find_active_grant",
    "find_catalog_permission",
    "grant_batch",
    "list_broker_inventory",
    "list_grants_for_batch",
    "revoke_batch_share",
    "revoke_catalog",
    "share_batch",
    "share_catalog",
    "update_negotiated_price",
]
