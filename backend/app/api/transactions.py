"""
Transactions API Endpoints
Checkout settlement, quotes, voids and refunds
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.dependencies import get_settlement_service
from app.core.auth import get_current_actor, require_permission
from app.core.errors import NotFoundError
from app.domain.actor import PROCESS_REFUNDS, VOID_TRANSACTIONS, Actor
from app.domain.cart import Cart
from app.domain.transaction import Payment, PaymentMethod, TransactionStatus
from app.services.settlement_service import RefundLine, SettlementService

router = APIRouter()


class CartLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=0)
    weight: Optional[Decimal] = Field(None, description="Measured weight for weight-priced products")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Price override (requires override_prices)")
    discount: Decimal = Field(Decimal("0.00"), ge=0)


class QuoteRequest(BaseModel):
    items: List[CartLineRequest]
    customer_id: Optional[str] = None
    coupon_codes: List[str] = Field(default_factory=list)
    loyalty_points_to_use: int = Field(0, ge=0)
    age_verified: bool = False
    notes: Optional[str] = None


class CreateTransactionRequest(QuoteRequest):
    payments: List[Payment]


class VoidRequest(BaseModel):
    reason: str


class RefundRequest(BaseModel):
    items: List[RefundLine]
    reason: str
    refund_method: Optional[PaymentMethod] = None


def build_cart(service: SettlementService, request: QuoteRequest) -> Cart:
    """Assemble a session cart from the register's request"""
    cart = Cart(age_verified=request.age_verified, notes=request.notes)

    with service.uow_factory() as uow:
        if request.customer_id:
            customer = uow.customers.find_by_id(request.customer_id)
            if customer is None:
                raise NotFoundError("Customer", request.customer_id)
            cart.set_customer(customer)

        for line in request.items:
            product = uow.products.find_by_id(line.product_id)
            if product is None:
                raise NotFoundError("Product", line.product_id)
            item = cart.add_item(product, line.quantity, line.weight)
            if line.unit_price is not None:
                item.unit_price = line.unit_price
            if line.discount:
                cart.apply_line_discount(product.id, item.discount + line.discount)

    for code in request.coupon_codes:
        cart.apply_coupon(code)
    cart.set_loyalty_points(request.loyalty_points_to_use)
    return cart


@router.post("/")
def create_transaction(
    request: CreateTransactionRequest,
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    """
    Settle a cart into a completed transaction

    All-or-nothing: on any error nothing is written.
    """
    cart = build_cart(service, request)
    transaction = service.create_transaction(cart, request.payments, actor=actor)

    return {
        "status": "success",
        "message": "Transaction completed successfully",
        "data": transaction.to_dict()
    }


@router.post("/quote")
def quote_transaction(
    request: QuoteRequest,
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    """Totals, discount breakdown and points to earn, without settling"""
    cart = build_cart(service, request)
    plan = service.quote(cart, actor=actor)

    return {
        "status": "success",
        "data": plan.to_dict()
    }


@router.get("/")
def list_transactions(
    status: Optional[TransactionStatus] = Query(None, description="Filter by status"),
    cashier_id: Optional[str] = Query(None, description="Filter by cashier"),
    customer_id: Optional[str] = Query(None, description="Filter by customer"),
    from_date: Optional[datetime] = Query(None, description="Created at or after (ISO format)"),
    to_date: Optional[datetime] = Query(None, description="Created at or before (ISO format)"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    transactions, total = service.list_transactions(
        status=status,
        cashier_id=cashier_id,
        customer_id=customer_id,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset
    )

    return {
        "status": "success",
        "total": total,
        "limit": limit,
        "offset": offset,
        "count": len(transactions),
        "data": [t.to_dict() for t in transactions]
    }


@router.get("/{transaction_id}")
def get_transaction(
    transaction_id: str,
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    return {
        "status": "success",
        "data": service.get_transaction(transaction_id).to_dict()
    }


@router.put("/{transaction_id}/void")
def void_transaction(
    transaction_id: str,
    request: VoidRequest,
    actor: Actor = Depends(require_permission(VOID_TRANSACTIONS)),
    service: SettlementService = Depends(get_settlement_service),
):
    transaction = service.void_transaction(transaction_id, request.reason, actor)

    return {
        "status": "success",
        "message": "Transaction voided successfully",
        "data": transaction.to_dict()
    }


@router.post("/{transaction_id}/refund")
def refund_transaction(
    transaction_id: str,
    request: RefundRequest,
    actor: Actor = Depends(require_permission(PROCESS_REFUNDS)),
    service: SettlementService = Depends(get_settlement_service),
):
    refund = service.refund_transaction(
        transaction_id,
        request.items,
        request.reason,
        refund_method=request.refund_method,
        actor=actor,
    )

    return {
        "status": "success",
        "message": "Refund processed successfully",
        "refund_amount": str(-refund.total_amount),
        "data": refund.to_dict()
    }
