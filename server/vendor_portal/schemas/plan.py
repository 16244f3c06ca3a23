"""Plan-related Pydantic schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import Money


class CreatePlanRequest(BaseModel):
    """Request schema for creating a plan."""

    name: str = Field(..., min_length=1, max_length=255, description="Plan name")
    description: Optional[str] = Field(None, max_length=5000, description="Plan description")
    price: Money = Field(..., description="Price per person")


class GetPlanRequest(BaseModel):
    """Request schema for getting a plan."""

    plan_id: UUID = Field(..., description="Plan to retrieve")


class Plan(BaseModel):
    """Plan response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique plan ID")
    vendor_id: str = Field(..., description="Owning vendor")
    name: str = Field(..., description="Plan name")
    description: Optional[str] = Field(None, description="Plan description")
    price: Money = Field(..., description="Price per person")
    is_active: bool = Field(..., description="Whether the plan is offered")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")


class ListPlansResponse(BaseModel):
    """Plans owned by the calling vendor, newest first."""

    plans: List[Plan] = Field(..., description="Plans")
