import importlib

from slabtrade.models.batch import Batch
from slabtrade.models.reservation import Reservation
from slabtrade.models.sale import Sale
from slabtrade.models.shared_inventory import SharedCatalogPermission, SharedInventoryBatch
from slabtrade.models.user import User


def import_all_models() -> None:
    for module_name in (
        "slabtrade.models.batch",
        "slabtrade.models.reservation",
        "slabtrade.models.sale",
        "slabtrade.models.shared_inventory",
        "slabtrade.models.user",
    ):
        importlib.import_module(module_name)


__all__ = [
    "Batch",
    "Reservation",
    "Sale",
    "SharedCatalogPermission",
    "SharedInventoryBatch",
    "User",
    "import_all_models",
]
