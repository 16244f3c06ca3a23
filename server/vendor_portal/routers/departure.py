"""Departure router for departure management and cancellation."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, RefundClient, VendorAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.departure import (
    BulkCreateDeparturesRequest,
    BulkCreateDeparturesResponse,
    BulkCreateError,
    CancelDepartureRequest,
    CancelDepartureResponse,
    CreateDepartureRequest,
    DeleteDepartureRequest,
    DeleteDepartureResponse,
    Departure,
    GetDepartureRequest,
    ListDeparturesRequest,
    ListDeparturesResponse,
    RefundResultItem,
    RefundSummary,
    UpdateDepartureRequest,
)
from ..services.departure_cancellation_service import DepartureCancellationService, RefundFailure
from ..services.departure_service import DepartureService
from ..services.refund_client import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/departure", tags=["departure"])


def _convert_departure_to_schema(departure_model) -> Departure:
    """Convert departure model to schema."""
    return Departure(
        id=str(departure_model.id),
        plan_id=str(departure_model.plan_id),
        departure_date=departure_model.departure_date,
        pickup_location=departure_model.pickup_location,
        pickup_time=departure_model.pickup_time,
        total_capacity=departure_model.total_capacity,
        booked_seats=departure_model.booked_seats,
        available_seats=departure_model.available_seats,
        status=departure_model.status,
        is_active=departure_model.is_active,
        cancelled_at=departure_model.cancelled_at,
        cancellation_reason=departure_model.cancellation_reason,
        created_at=departure_model.created_at,
    )


def _ok(response_data) -> JSONResponse:
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/create", response_model=Departure)
async def create_departure(
    request: CreateDepartureRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """Create a departure for a plan the vendor owns."""
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.create_departure(request, actor.user_id)
        return _ok(_convert_departure_to_schema(departure))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure creation",
            extra={
                "plan_id": str(request.plan_id),
                "departure_date": request.departure_date.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/bulk-create", response_model=BulkCreateDeparturesResponse)
async def bulk_create_departures(
    request: BulkCreateDeparturesRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """
    Create departures for every date matching a daily or weekly pattern.

    Dates are created independently; the response lists the ones that failed.
    """
    departure_service = DepartureService(db)

    requested, created, failures = await departure_service.bulk_create_departures(request, actor.user_id)

    response_data = BulkCreateDeparturesResponse(
        requested=requested,
        created=len(created),
        failed=len(failures),
        departures=[_convert_departure_to_schema(d) for d in created],
        errors=[BulkCreateError(departure_date=day, error=error) for day, error in failures],
    )
    return _ok(response_data)


@router.post("/list", response_model=ListDeparturesResponse)
async def list_departures(
    request: ListDeparturesRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """List a plan's departures, newest date first."""
    departure_service = DepartureService(db)

    departures = await departure_service.list_departures_by_plan(request.plan_id, actor.user_id)
    return _ok(ListDeparturesResponse(departures=[_convert_departure_to_schema(d) for d in departures]))


@router.post("/get", response_model=Departure)
async def get_departure(
    request: GetDepartureRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """Get a departure of a plan the vendor owns."""
    departure_service = DepartureService(db)

    departure, _ = await departure_service.get_departure_for_vendor(request.departure_id, actor.user_id)
    return _ok(_convert_departure_to_schema(departure))


@router.post("/update", response_model=Departure)
async def update_departure(
    request: UpdateDepartureRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """
    Update a departure.

    Capacity can never be reduced below the seats already booked.
    """
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.update_departure(request, actor.user_id)
        return _ok(_convert_departure_to_schema(departure))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure update",
            extra={"departure_id": str(request.departure_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/delete", response_model=DeleteDepartureResponse)
async def delete_departure(
    request: DeleteDepartureRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """Delete a departure that has no booked seats."""
    departure_service = DepartureService(db)

    await departure_service.delete_departure(request.departure_id, actor.user_id)
    return _ok(DeleteDepartureResponse(departure_id=str(request.departure_id), deleted=True))


@router.post("/cancel", response_model=CancelDepartureResponse)
async def cancel_departure(
    request: CancelDepartureRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
    refund_service: RefundService = RefundClient,
) -> JSONResponse:
    """
    Cancel a departure and refund every confirmed, paid booking in full.

    The departure is cancelled even when some refunds fail; the response
    reports the per-booking outcomes.
    """
    cancellation_service = DepartureCancellationService(db, refund_service)

    try:
        result = await cancellation_service.cancel_departure(
            request.departure_id, request.reason, actor.user_id
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure cancellation",
            extra={"departure_id": str(request.departure_id), "vendor_id": actor.user_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e

    summary = result.refund_results
    response_data = CancelDepartureResponse(
        departure=_convert_departure_to_schema(result.departure),
        refund_results=RefundSummary(
            total=summary.total,
            successful=summary.successful,
            failed=summary.failed,
            errors=summary.errors,
        ),
        items=[
            RefundResultItem(
                booking_id=str(item.booking_id),
                ok=item.ok,
                reason=item.reason if isinstance(item, RefundFailure) else None,
            )
            for item in result.items
        ],
    )

    return _ok(response_data)
