"""
Loyalty Service
Points accrual, redemption value and tier evaluation

Accrual: floor(floor(amount x 0.01) x tier multiplier), earned at the tier
the customer holds before the purchase. The tier is then recomputed from
lifetime spend including the purchase.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

from app.core.errors import InsufficientPointsError, NotFoundError, PermissionDeniedError, ValidationError
from app.domain.actor import MANAGE_LOYALTY, Actor
from app.domain.customer import Customer, LoyaltyTier
from app.domain.money import ZERO, floor_int, to_cents, to_decimal
from app.repositories.base import UnitOfWork

logger = logging.getLogger(__name__)


BASE_POINT_RATE = Decimal("0.01")
POINT_VALUE = Decimal("0.01")

TIER_MULTIPLIERS: Dict[LoyaltyTier, Decimal] = {
    LoyaltyTier.BRONZE: Decimal("1.0"),
    LoyaltyTier.SILVER: Decimal("1.25"),
    LoyaltyTier.GOLD: Decimal("1.5"),
    LoyaltyTier.PLATINUM: Decimal("2.0"),
}

# Highest tier first
TIER_THRESHOLDS = [
    (LoyaltyTier.PLATINUM, Decimal("5000")),
    (LoyaltyTier.GOLD, Decimal("2500")),
    (LoyaltyTier.SILVER, Decimal("1000")),
    (LoyaltyTier.BRONZE, Decimal("0")),
]


class PointsAdjustment(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


# ============================================================
# PURE RULES
# ============================================================

def tier_for_spend(total_spent) -> LoyaltyTier:
    spent = to_decimal(total_spent)
    for tier, threshold in TIER_THRESHOLDS:
        if spent >= threshold:
            return tier
    return LoyaltyTier.BRONZE


def points_for_amount(amount, tier: LoyaltyTier) -> int:
    """floor(floor(amount x 0.01) x multiplier)"""
    amount = to_decimal(amount)
    if amount <= 0:
        return 0
    base_points = floor_int(amount * BASE_POINT_RATE)
    return floor_int(base_points * TIER_MULTIPLIERS[LoyaltyTier(tier)])


def points_earned(customer: Optional[Customer], amount) -> int:
    """Points only accrue to enrolled members"""
    if customer is None or not customer.loyalty.is_member:
        return 0
    return points_for_amount(amount, customer.loyalty.tier)


def redemption_value(points: int) -> Decimal:
    return to_cents(Decimal(points) * POINT_VALUE)


def check_redeemable(customer: Optional[Customer], points: int) -> None:
    """
    Redemption is all-or-nothing: asking for more points than the balance
    rejects the whole request.
    """
    if points < 0:
        raise ValidationError("Points to redeem cannot be negative", {"points": points})
    if points == 0:
        return
    if customer is None:
        raise ValidationError("Loyalty redemption requires a customer")
    if not customer.loyalty.is_member:
        raise ValidationError("Loyalty redemption requires an enrolled member", {"customer_id": customer.id})
    if points > customer.loyalty.points:
        raise InsufficientPointsError(customer.loyalty.points, points)


def apply_purchase(customer: Customer, amount, points_used: int, points_awarded: int, at: datetime) -> Customer:
    """Record one completed purchase on the customer (mutates and returns it)"""
    check_redeemable(customer, points_used)

    history = customer.purchase_history
    history.total_spent = to_cents(history.total_spent + to_decimal(amount))
    history.total_transactions += 1
    history.average_transaction_amount = to_cents(history.total_spent / history.total_transactions)
    history.last_purchase_date = at

    customer.loyalty.points = customer.loyalty.points - points_used + points_awarded
    customer.loyalty.tier = tier_for_spend(history.total_spent)
    return customer


def reverse_purchase(customer: Customer, amount, points_used: int, points_awarded: int) -> Customer:
    """Undo the effects of apply_purchase for a voided transaction"""
    history = customer.purchase_history
    history.total_spent = max(ZERO, to_cents(history.total_spent - to_decimal(amount)))
    history.total_transactions = max(0, history.total_transactions - 1)
    if history.total_transactions:
        history.average_transaction_amount = to_cents(history.total_spent / history.total_transactions)
    else:
        history.average_transaction_amount = ZERO

    customer.loyalty.points = max(0, customer.loyalty.points - points_awarded) + points_used
    customer.loyalty.tier = tier_for_spend(history.total_spent)
    return customer


def adjust_points(customer: Customer, adjustment: PointsAdjustment, points: int) -> Customer:
    """Manual add/subtract/set; subtract and set clamp at zero"""
    if not customer.loyalty.is_member:
        raise ValidationError("Customer is not enrolled in loyalty program", {"customer_id": customer.id})

    adjustment = PointsAdjustment(adjustment)
    current = customer.loyalty.points
    if adjustment == PointsAdjustment.ADD:
        new_points = current + abs(points)
    elif adjustment == PointsAdjustment.SUBTRACT:
        new_points = max(0, current - abs(points))
    else:
        new_points = max(0, points)

    customer.loyalty.points = new_points
    customer.loyalty.tier = tier_for_spend(customer.purchase_history.total_spent)
    return customer


def new_membership_number() -> str:
    return "LP" + uuid.uuid4().hex[:10].upper()


def enroll(customer: Customer, at: datetime, membership_number: Optional[str] = None) -> Customer:
    if customer.loyalty.is_member:
        raise ValidationError(
            "Customer already enrolled in loyalty program",
            {"membership_number": customer.loyalty.membership_number},
        )
    customer.loyalty.membership_number = membership_number or new_membership_number()
    customer.loyalty.join_date = at
    customer.loyalty.tier = tier_for_spend(customer.purchase_history.total_spent)
    return customer


def tiers() -> List[Dict]:
    """Tier table for display: name, spend requirement, multiplier"""
    return [
        {
            "name": tier.value,
            "min_spend": str(threshold),
            "multiplier": str(TIER_MULTIPLIERS[tier]),
        }
        for tier, threshold in reversed(TIER_THRESHOLDS)
    ]


# ============================================================
# SERVICE
# ============================================================

class LoyaltyService:
    """Customer-service operations on loyalty accounts"""

    def __init__(self, uow_factory: Callable[[], UnitOfWork], clock: Callable[[], datetime]):
        self.uow_factory = uow_factory
        self.clock = clock

    def _get_customer(self, uow: UnitOfWork, customer_id: str) -> Customer:
        customer = uow.customers.find_by_id(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        return customer

    def get_account(self, customer_id: str) -> Dict:
        with self.uow_factory() as uow:
            customer = self._get_customer(uow, customer_id)

        tier = customer.loyalty.tier
        next_tier = next(
            ((t, threshold) for t, threshold in reversed(TIER_THRESHOLDS) if t.rank == tier.rank + 1),
            None,
        )
        return {
            "customer_id": customer.id,
            "name": customer.full_name,
            "loyalty": customer.loyalty.model_dump(mode="json"),
            "purchase_history": customer.purchase_history.model_dump(mode="json"),
            "multiplier": str(TIER_MULTIPLIERS[tier]),
            "next_tier": next_tier[0].value if next_tier else None,
            "spend_to_next_tier": (
                str(max(ZERO, to_cents(next_tier[1] - customer.purchase_history.total_spent)))
                if next_tier else None
            ),
        }

    def enroll_customer(self, customer_id: str, membership_number: Optional[str] = None) -> Customer:
        at = self.clock()
        with self.uow_factory() as uow:
            _, after = uow.customers.update_locked(
                customer_id, lambda c: enroll(c, at, membership_number)
            )
            uow.commit()

        logger.info(f"Customer {customer_id} enrolled in loyalty program: {after.loyalty.membership_number}")
        return after

    def adjust_points(self, customer_id: str, adjustment: PointsAdjustment, points: int, reason: str, actor: Actor) -> Dict:
        if not actor.can(MANAGE_LOYALTY):
            raise PermissionDeniedError(MANAGE_LOYALTY)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for points adjustments")

        with self.uow_factory() as uow:
            before, after = uow.customers.update_locked(
                customer_id, lambda c: adjust_points(c, adjustment, points)
            )
            uow.commit()

        logger.info(
            f"Points adjustment: {customer_id} - {before.loyalty.points} -> {after.loyalty.points} "
            f"({PointsAdjustment(adjustment).value}: {points}) - Reason: {reason} - By: {actor.id}"
        )
        return {
            "customer_id": customer_id,
            "old_points": before.loyalty.points,
            "new_points": after.loyalty.points,
            "tier": after.loyalty.tier.value,
            "reason": reason,
        }

    def quote_redemption(self, customer_id: str, points: int) -> Dict:
        """Value of a redemption without applying it"""
        if points <= 0:
            raise ValidationError("Points to redeem must be positive", {"points": points})

        with self.uow_factory() as uow:
            customer = self._get_customer(uow, customer_id)

        check_redeemable(customer, points)
        return {
            "customer_id": customer_id,
            "points": points,
            "discount_value": str(redemption_value(points)),
            "remaining_points": customer.loyalty.points - points,
        }
