"""Plan router for vendor trip templates."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, VendorAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import Money
from ..schemas.plan import CreatePlanRequest, GetPlanRequest, ListPlansResponse, Plan
from ..services.plan_service import PlanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/plan", tags=["plan"])


def _convert_plan_to_schema(plan_model) -> Plan:
    """Convert plan model to schema with Money conversion."""
    return Plan(
        id=str(plan_model.id),
        vendor_id=plan_model.vendor_id,
        name=plan_model.name,
        description=plan_model.description,
        price=Money(amount=plan_model.price_amount, currency=plan_model.price_currency),
        is_active=plan_model.is_active,
        created_at=plan_model.created_at,
    )


@router.post("/create", response_model=Plan)
async def create_plan(
    request: CreatePlanRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """Create a new plan owned by the calling vendor."""
    plan_service = PlanService(db)

    try:
        plan = await plan_service.create_plan(request, actor.user_id)
        response_data = _convert_plan_to_schema(plan)

        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in plan creation",
            extra={"vendor_id": actor.user_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/get", response_model=Plan)
async def get_plan(
    request: GetPlanRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """Get a plan owned by the calling vendor."""
    plan_service = PlanService(db)

    plan = await plan_service.get_owned_plan_or_raise(request.plan_id, actor.user_id)
    response_data = _convert_plan_to_schema(plan)

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/list", response_model=ListPlansResponse)
async def list_plans(
    db: AsyncSession = DatabaseSession,
    actor: Actor = VendorAuth,
) -> JSONResponse:
    """List the calling vendor's plans, newest first."""
    plan_service = PlanService(db)

    plans = await plan_service.list_plans_by_vendor(actor.user_id)
    response_data = ListPlansResponse(plans=[_convert_plan_to_schema(p) for p in plans])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
