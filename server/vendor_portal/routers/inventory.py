"""Inventory router for seat availability."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, RequiredAuth
from ..schemas.inventory import GetAvailabilityRequest, SeatAvailability
from ..services.seat_inventory_service import SeatInventoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/inventory", tags=["inventory"])


@router.post("/availability", response_model=SeatAvailability)
async def get_availability(
    request: GetAvailabilityRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = RequiredAuth,
) -> JSONResponse:
    """Read a departure's current seat counter."""
    seat_inventory = SeatInventoryService(db)

    availability = await seat_inventory.get_availability(request.departure_id)

    logger.debug(
        "Seat availability requested",
        extra={
            "departure_id": str(request.departure_id),
            "available_seats": availability.available_seats,
        }
    )

    response_data = SeatAvailability(
        departure_id=str(availability.departure_id),
        total_capacity=availability.total_capacity,
        booked_seats=availability.booked_seats,
        available_seats=availability.available_seats,
        is_active=availability.is_active,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
