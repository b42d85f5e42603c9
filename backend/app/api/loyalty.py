"""
Loyalty API Endpoints
Account lookup, enrollment, manual adjustments and redemption quotes
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.dependencies import get_loyalty_service
from app.core.auth import get_current_actor
from app.domain.actor import Actor
from app.services import loyalty_service
from app.services.loyalty_service import LoyaltyService, PointsAdjustment

router = APIRouter()


class EnrollRequest(BaseModel):
    membership_number: Optional[str] = None


class AdjustPointsRequest(BaseModel):
    customer_id: str
    type: PointsAdjustment
    points: int
    reason: str


class RedeemRequest(BaseModel):
    customer_id: str
    points: int = Field(..., gt=0)


@router.get("/customers/{customer_id}")
def get_loyalty_account(
    customer_id: str,
    actor: Actor = Depends(get_current_actor),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return {
        "status": "success",
        "data": service.get_account(customer_id)
    }


@router.post("/customers/{customer_id}/enroll")
def enroll_customer(
    customer_id: str,
    request: Optional[EnrollRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    customer = service.enroll_customer(customer_id, request.membership_number if request else None)

    return {
        "status": "success",
        "message": "Customer enrolled in loyalty program",
        "data": customer.loyalty.model_dump(mode="json")
    }


@router.post("/adjust-points")
def adjust_points(
    request: AdjustPointsRequest,
    actor: Actor = Depends(get_current_actor),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    """Manual points adjustment (customer service); requires manage_loyalty"""
    result = service.adjust_points(request.customer_id, request.type, request.points, request.reason, actor)

    return {
        "status": "success",
        "message": "Points adjusted successfully",
        "data": result
    }


@router.post("/redeem")
def quote_redemption(
    request: RedeemRequest,
    actor: Actor = Depends(get_current_actor),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    """
    Value of a points redemption. Points are deducted only when the
    redemption is settled as part of a transaction.
    """
    return {
        "status": "success",
        "data": service.quote_redemption(request.customer_id, request.points)
    }


@router.get("/tiers")
def get_tiers():
    return {
        "status": "success",
        "data": loyalty_service.tiers()
    }
