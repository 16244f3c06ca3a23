"""Plan service for business logic operations."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import AuthorizationError, NotFoundError
from ..models.plan import Plan
from ..schemas.plan import CreatePlanRequest

logger = logging.getLogger(__name__)


class PlanService:
    """Service for plan-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_plan(self, request: CreatePlanRequest, vendor_id: str) -> Plan:
        """
        Create a new plan owned by ``vendor_id``.

        Args:
            request: Plan creation request
            vendor_id: Owning vendor

        Returns:
            Created plan entity
        """
        plan = Plan(
            vendor_id=vendor_id,
            name=request.name,
            description=request.description,
            price_amount=request.price.amount,
            price_currency=request.price.currency,
            is_active=True,
        )

        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info(
            "Plan created successfully",
            extra={
                "plan_id": str(plan.id),
                "vendor_id": vendor_id,
                "plan_name": plan.name,
            }
        )

        return plan

    async def get_plan_by_id(self, plan_id: UUID) -> Plan | None:
        stmt = select(Plan).where(Plan.id == plan_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_plan_by_id_or_raise(self, plan_id: UUID) -> Plan:
        """
        Get plan by ID or raise NotFoundError.

        Raises:
            NotFoundError: If plan not found
        """
        plan = await self.get_plan_by_id(plan_id)

        if not plan:
            logger.warning("Plan not found", extra={"plan_id": str(plan_id)})
            raise NotFoundError(resource_type="plan", resource_id=str(plan_id))

        return plan

    async def get_owned_plan_or_raise(self, plan_id: UUID, vendor_id: str) -> Plan:
        """
        Get a plan the vendor owns.

        Raises:
            NotFoundError: If plan not found
            AuthorizationError: If another vendor owns the plan
        """
        plan = await self.get_plan_by_id_or_raise(plan_id)

        if plan.vendor_id != vendor_id:
            logger.warning(
                "Plan access denied - vendor does not own plan",
                extra={"plan_id": str(plan_id), "vendor_id": vendor_id}
            )
            raise AuthorizationError("You do not own this plan")

        return plan

    async def list_plans_by_vendor(self, vendor_id: str) -> list[Plan]:
        stmt = select(Plan).where(Plan.vendor_id == vendor_id).order_by(Plan.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars())
