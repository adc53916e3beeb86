from slabtrade.routers.batches import router as batches_router
from slabtrade.routers.health import router as health_router
from slabtrade.routers.reservations import router as reservations_router
from slabtrade.routers.sales import router as sales_router
from slabtrade.routers.sharing import router as sharing_router

__all__ = [
    "batches_router",
    "health_router",
    "reservations_router",
    "sales_router",
    "sharing_router",
]
