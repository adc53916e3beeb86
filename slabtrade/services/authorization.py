"""
Capability checks for batch operations.

Every decision reduces to which of OWNER, GRANTEE and APPROVER an actor holds
over a batch. Grants are looked up here so that the sharing registry and the
reservation flow agree on what "grantee" means.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from slabtrade.core.constants import UserRole
from slabtrade.core.errors import AuthorizationDenied, UserNotFound, ValidationError
from slabtrade.models.batch import Batch
from slabtrade.models.shared_inventory import SharedCatalogPermission, SharedInventoryBatch
from slabtrade.models.user import User

logger = logging.getLogger(__name__)

_INDUSTRY_ROLES = (UserRole.ADMIN_INDUSTRIA, UserRole.VENDEDOR_INTERNO)


class Capability(str, Enum):
    OWNER = "OWNER"
    GRANTEE = "GRANTEE"
    APPROVER = "APPROVER"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: UserRole
    industry_id: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=UserRole(user.role), industry_id=user.industry_id)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN_INDUSTRIA

    @property
    def is_broker(self) -> bool:
        return self.role == UserRole.BROKER


def load_actor(db: Session, user_id: str) -> Actor:
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise UserNotFound(user_id)
    try:
        return Actor.from_user(user)
    except ValueError as exc:
        raise ValidationError("User {} has an unknown role.".format(user_id)) from exc


def find_active_grant(db: Session, batch_id: str, user_id: str) -> Optional[SharedInventoryBatch]:
    return (
        db.execute(
            select(SharedInventoryBatch).where(
                SharedInventoryBatch.batch_id == batch_id,
                SharedInventoryBatch.shared_with_user_id == user_id,
                SharedInventoryBatch.is_active.is_(True),
            )
        )
        .scalars()
        .first()
    )


def find_catalog_permission(db: Session, industry_id: str, user_id: str) -> Optional[SharedCatalogPermission]:
    return (
        db.execute(
            select(SharedCatalogPermission).where(
                SharedCatalogPermission.industry_id == industry_id,
                SharedCatalogPermission.broker_user_id == user_id,
                SharedCatalogPermission.is_active.is_(True),
            )
        )
        .scalars()
        .first()
    )


def is_owner(actor: Actor, batch: Batch) -> bool:
    return (
        actor.industry_id is not None
        and actor.industry_id == batch.industry_id
        and actor.role in _INDUSTRY_ROLES
    )


def capabilities_for(db: Session, actor: Actor, batch: Batch) -> set[Capability]:
    held: set[Capability] = set()
    if is_owner(actor, batch):
        held.add(Capability.OWNER)
        if actor.is_admin:
            held.add(Capability.APPROVER)
        return held

    if find_active_grant(db, batch.id, actor.user_id) is not None:
        held.add(Capability.GRANTEE)
    elif find_catalog_permission(db, batch.industry_id, actor.user_id) is not None:
        held.add(Capability.GRANTEE)
    return held


def require_capability(db: Session, actor: Actor, batch: Batch, *capabilities: Capability) -> set[Capability]:
    """Raise ``AuthorizationDenied`` unless the actor holds one of ``capabilities``."""
    held = capabilities_for(db, actor, batch)
    if held.intersection(capabilities):
        return held

    wanted = sorted(capability.value for capability in capabilities)
    logger.warning(
        "Denied %s: needs one of %s",
        actor.role.value,
        ",".join(wanted),
        extra={"actor_id": actor.user_id, "batch_id": batch.id},
    )
    raise AuthorizationDenied(
        "User {} may not perform this action on batch {}.".format(actor.user_id, batch.id),
        {"required": wanted, "held": sorted(capability.value for capability in held)},
    )


__all__ = [
    "Actor",
    "Capability",
    "capabilities_for",
    "find_active_grant",
    "find_catalog_permission",
    "is_owner",
    "load_actor",
    "require_capability",
]
