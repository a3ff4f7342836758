"""Pydantic request/response schemas for bp_investment API."""

import uuid

from pydantic import BaseModel, Field

from src.bp_distribution.application.schemas import AccrualItem, PositionResponse


class OpenPositionRequest(BaseModel):
    plan_id: uuid.UUID
    amount_cents: int = Field(..., gt=0, description="Principal in cents")


class OpenPositionResponse(BaseModel):
    position: PositionResponse
    referral_commission_cents: int


class PositionListResponse(BaseModel):
    items: list[PositionResponse]
    total: int


class AccrualListResponse(BaseModel):
    position_id: str
    items: list[AccrualItem]
    total_cents: int
