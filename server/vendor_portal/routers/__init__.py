"""FastAPI routers package."""

from .booking import router as booking_router
from .departure import router as departure_router
from .health import router as health_router
from .inventory import router as inventory_router
from .metrics import router as metrics_router
from .plan import router as plan_router

__all__ = [
    "booking_router",
    "departure_router",
    "health_router",
    "inventory_router",
    "metrics_router",
    "plan_router",
]
