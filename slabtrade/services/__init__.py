from slabtrade.services.authorization import Actor, Capability, capabilities_for, load_actor, require_capability
from slabtrade.services.batch_service import (
    adjust_availability,
    archive_batch,
    create_batch,
    get_batch,
    list_batches,
    restore_batch,
    update_batch,
)
from slabtrade.services.reservation_service import (
    approve_reservation,
    cancel_reservation,
    create_reservation,
    expire_due_reservations,
    expire_reservation,
    get_reservation,
    list_reservations,
    reject_reservation,
)
from slabtrade.services.sale_service import confirm_sale, get_sale, list_sales, summarize_sales
from slabtrade.services.sharing_service import (
    list_broker_inventory,
    list_grants_for_batch,
    revoke_batch_share,
    revoke_catalog,
    share_batch,
    share_catalog,
    update_negotiated_price,
)

__all__ = [
    "Actor",
    "Capability",
    "adjust_availability",
    "approve_reservation",
    "archive_batch",
    "cancel_reservation",
    "capabilities_for",
    "confirm_sale",
    "create_batch",
    "create_reservation",
    "expire_due_reservations",
    "expire_reservation",
    "get_batch",
    "get_reservation",
    "get_sale",
    "list_batches",
    "list_broker_inventory",
    "list_grants_for_batch",
    "list_reservations",
    "list_sales",
    "load_actor",
    "reject_reservation",
    "require_capability",
    "restore_batch",
    "revoke_batch_share",
    "revoke_catalog",
    "share_batch",
    "share_catalog",
    "summarize_sales",
    "update_batch",
    "update_negotiated_price",
]
