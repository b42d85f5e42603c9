"""
Coupons API Endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_settlement_service
from app.core.auth import get_current_actor
from app.domain.actor import Actor
from app.services.settlement_service import SettlementService

router = APIRouter()


@router.get("/validate/{code}")
def validate_coupon(
    code: str,
    customer_id: Optional[str] = Query(None, description="Customer the coupon would be applied for"),
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    """
    Check whether a coupon can be redeemed right now

    The minimum purchase is only checked at quote/settlement time, against
    the eligible subtotal of the cart.
    """
    return {
        "status": "success",
        "data": service.validate_coupon(code, customer_id)
    }
