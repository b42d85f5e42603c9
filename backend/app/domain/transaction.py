"""
Transaction Domain Model

Immutable settlement record. Line snapshots are frozen at sale time and
independent of later product edits. The only permitted mutations are the
status transitions completed -> voided and completed -> refunded, which
produce a new copy of the record.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Tuple
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.core.errors import InvalidTransitionError
from app.domain.product import PriceType


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    VOIDED = "voided"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT = "credit"
    DEBIT = "debit"
    EBT = "ebt"
    GIFT_CARD = "gift_card"
    STORE_CREDIT = "store_credit"
    MOBILE_PAYMENT = "mobile_payment"


class Payment(BaseModel):
    """One tender applied toward a transaction (negative on refunds)"""

    method: PaymentMethod
    amount: Decimal
    card_last4: Optional[str] = Field(None, max_length=4)
    auth_code: Optional[str] = None
    reference_number: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class TransactionItem(BaseModel):
    """Frozen line snapshot"""

    line_id: str
    product_id: str
    name: str
    barcode: Optional[str] = None
    plu: Optional[str] = None
    category: Optional[str] = None
    price_type: PriceType = PriceType.FIXED
    quantity: int
    weight: Optional[Decimal] = None
    unit_price: Decimal
    base_amount: Decimal
    discount_amount: Decimal = Decimal("0.00")
    line_total: Decimal
    taxable: bool = True
    tax_rate: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")

    model_config = ConfigDict(frozen=True)


class AppliedCoupon(BaseModel):
    coupon_id: str
    code: str
    discount_amount: Decimal

    model_config = ConfigDict(frozen=True)


class SkippedCoupon(BaseModel):
    code: str
    reason: str

    model_config = ConfigDict(frozen=True)


class Transaction(BaseModel):
    """
    Settlement record

    Amounts:
        subtotal: Sum of line base amounts
        line_discount / coupon_discount / loyalty_discount: Discount breakdown
        discount_amount: Sum of the three discount sources
        tax_amount: Sum of line taxes
        total_amount: subtotal - discount_amount + tax_amount (>= 0)
        amount_tendered / change_given: Payment summary

    Refunds are separate transactions with negated amounts and
    ``refund_of`` pointing at the original.
    """

    id: str
    transaction_number: str
    receipt_number: str
    items: Tuple[TransactionItem, ...]
    customer_id: Optional[str] = None
    cashier_id: str

    subtotal: Decimal
    line_discount: Decimal = Decimal("0.00")
    coupon_discount: Decimal = Decimal("0.00")
    loyalty_discount: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    tax_amount: Decimal
    total_amount: Decimal

    payments: Tuple[Payment, ...]
    amount_tendered: Decimal = Decimal("0.00")
    change_given: Decimal = Decimal("0.00")

    coupons_used: Tuple[AppliedCoupon, ...] = ()
    coupons_skipped: Tuple[SkippedCoupon, ...] = ()
    loyalty_points_earned: int = 0
    loyalty_points_used: int = 0

    status: TransactionStatus = TransactionStatus.COMPLETED
    refund_of: Optional[str] = None
    refund_reason: Optional[str] = None
    void_reason: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime
    voided_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_refund(self) -> bool:
        return self.refund_of is not None

    def item(self, line_id: str) -> Optional[TransactionItem]:
        return next((item for item in self.items if item.line_id == line_id), None)

    def to_dict(self) -> dict:
        """JSON-friendly representation"""
        return self.model_dump(mode="json")


# ============================================================
# LIFECYCLE
# ============================================================

ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED},
    TransactionStatus.COMPLETED: {TransactionStatus.VOIDED, TransactionStatus.REFUNDED},
}


def can_transition(from_status: TransactionStatus, to_status: TransactionStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def validate_transition(transaction: Transaction, target_status: TransactionStatus) -> None:
    if not can_transition(transaction.status, target_status):
        raise InvalidTransitionError(transaction.id, transaction.status.value, target_status.value)


def transition(transaction: Transaction, target_status: TransactionStatus, at: datetime, reason: Optional[str] = None) -> Transaction:
    """Return a copy of the transaction in the target status"""
    validate_transition(transaction, target_status)
    update = {"status": target_status}
    if target_status == TransactionStatus.VOIDED:
        update.update(voided_at=at, void_reason=reason)
    elif target_status == TransactionStatus.REFUNDED:
        update.update(refunded_at=at, refund_reason=reason)
    return transaction.model_copy(update=update)
