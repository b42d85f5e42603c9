"""
Discount Resolver

Merges the three discount sources of a settlement:
- manual per-line discounts (already on the priced lines)
- coupon discounts, re-validated at settlement time
- loyalty point redemption, valued at POINT_VALUE per point

Stacking: if any valid non-stackable coupon is supplied, the first one
wins and every other coupon is skipped as not_stackable. Otherwise all
valid (stackable) coupons combine. The combined coupon discount never
exceeds subtotal minus line discounts.
"""
import logging
from datetime import datetime, time
from decimal import Decimal
from typing import Callable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field

from app.core.clock import as_utc, utcnow
from app.core.errors import CouponRejection, InvalidCouponError, ValidationError
from app.domain.coupon import (
    BogoDiscount,
    BuyXGetYDiscount,
    Coupon,
    FixedAmountDiscount,
    PercentageDiscount,
)
from app.domain.customer import Customer, LoyaltyTier
from app.domain.money import ZERO, to_cents
from app.domain.product import PriceType
from app.domain.transaction import AppliedCoupon, SkippedCoupon, TransactionItem
from app.services import loyalty_service

logger = logging.getLogger(__name__)


class CouponCandidate(BaseModel):
    """A code supplied at checkout with whatever the registry returned for it"""

    code: str
    coupon: Optional[Coupon] = None
    customer_redemptions: Optional[int] = None


class ResolvedCoupon(BaseModel):
    coupon: Coupon
    discount_amount: Decimal


class DiscountBreakdown(BaseModel):
    """Receipt breakdown of every discount source"""

    line_discount: Decimal = ZERO
    coupon_discount: Decimal = ZERO
    loyalty_discount: Decimal = ZERO
    total_discount: Decimal = ZERO
    coupons: List[ResolvedCoupon] = Field(default_factory=list)
    coupons_skipped: List[SkippedCoupon] = Field(default_factory=list)
    loyalty_points_used: int = 0

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def coupons_applied(self) -> List[AppliedCoupon]:
        return [
            AppliedCoupon(coupon_id=r.coupon.id, code=r.coupon.code, discount_amount=r.discount_amount)
            for r in self.coupons
        ]


def normalize_codes(codes: Optional[Sequence[str]]) -> List[str]:
    """Upper-case, strip and de-duplicate, keeping first-seen order"""
    seen = []
    for code in codes or []:
        code = (code or "").strip().upper()
        if code and code not in seen:
            seen.append(code)
    return seen


def eligible_items(coupon: Coupon, items: Sequence[TransactionItem]) -> List[TransactionItem]:
    return [item for item in items if coupon.applies_to(item.product_id, item.category)]


def eligible_subtotal(coupon: Coupon, items: Sequence[TransactionItem]) -> Decimal:
    return to_cents(sum((item.base_amount for item in eligible_items(coupon, items)), ZERO))


def coupon_discount(coupon: Coupon, items: Sequence[TransactionItem]) -> Decimal:
    """Discount one coupon yields on the priced lines, before stacking caps"""
    discount = coupon.discount
    base = eligible_subtotal(coupon, items)

    if isinstance(discount, PercentageDiscount):
        amount = to_cents(base * discount.percent / Decimal(100))
        if discount.maximum_discount is not None:
            amount = min(amount, to_cents(discount.maximum_discount))
        return amount

    if isinstance(discount, FixedAmountDiscount):
        return min(to_cents(discount.amount), base)

    if isinstance(discount, BogoDiscount):
        amount = ZERO
        for item in eligible_items(coupon, items):
            if item.price_type == PriceType.WEIGHT:
                continue
            free_units = item.quantity // 2
            amount = to_cents(amount + to_cents(Decimal(free_units) * item.unit_price))
        return amount

    if isinstance(discount, BuyXGetYDiscount):
        # TODO: buy_x_get_y has no pricing rule yet; it is accepted and yields nothing
        logger.info(f"Coupon {coupon.code} is buy_x_get_y, which currently yields no discount")
        return ZERO

    return ZERO


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.strip().split(":")[:2]
    return time(int(hours), int(minutes))


class DiscountResolver:
    """
    Coupon validation and discount merging.

    Args:
        clock: Returns "now" (timezone-aware)
        timezone: Store timezone used for day-of-week and time windows
        strict: Raise InvalidCouponError instead of skipping invalid coupons
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        timezone: str = "UTC",
        strict: bool = False,
    ):
        self.clock = clock
        self.timezone = ZoneInfo(timezone)
        self.strict = strict

    def rejection_reason(
        self,
        coupon: Optional[Coupon],
        customer: Optional[Customer],
        customer_redemptions: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[CouponRejection]:
        """First failing eligibility predicate, or None when the coupon is usable"""
        if coupon is None:
            return CouponRejection.NOT_FOUND
        if not coupon.is_active:
            return CouponRejection.INACTIVE

        now = as_utc(now or self.clock())
        if now < as_utc(coupon.valid_from):
            return CouponRejection.NOT_YET_VALID
        if now > as_utc(coupon.valid_until):
            return CouponRejection.EXPIRED

        if coupon.usage_limit_total is not None and coupon.current_usage >= coupon.usage_limit_total:
            return CouponRejection.USAGE_EXCEEDED
        if (
            customer is not None
            and customer_redemptions is not None
            and coupon.usage_limit_per_customer is not None
            and customer_redemptions >= coupon.usage_limit_per_customer
        ):
            return CouponRejection.CUSTOMER_USAGE_EXCEEDED

        if coupon.requires_loyalty_membership and (customer is None or not customer.loyalty.is_member):
            return CouponRejection.MEMBERSHIP_REQUIRED

        # Guests are treated as bronze
        tier = customer.loyalty.tier if customer is not None else LoyaltyTier.BRONZE
        if tier.rank < coupon.minimum_loyalty_tier.rank:
            return CouponRejection.TIER_TOO_LOW

        local = now.astimezone(self.timezone)
        if coupon.day_of_week_restrictions:
            # 0 = Sunday
            day = (local.weekday() + 1) % 7
            if day not in coupon.day_of_week_restrictions:
                return CouponRejection.DAY_RESTRICTED

        if coupon.time_start and coupon.time_end:
            current = local.time().replace(second=0, microsecond=0)
            if current < _parse_hhmm(coupon.time_start) or current > _parse_hhmm(coupon.time_end):
                return CouponRejection.TIME_RESTRICTED

        return None

    def check_coupon(
        self,
        candidate: CouponCandidate,
        customer: Optional[Customer],
        items: Sequence[TransactionItem] = (),
        now: Optional[datetime] = None,
    ) -> Optional[CouponRejection]:
        """Eligibility plus the minimum purchase (checked against the eligible subtotal when lines are given)"""
        reason = self.rejection_reason(candidate.coupon, customer, candidate.customer_redemptions, now)
        if reason is None and items:
            if eligible_subtotal(candidate.coupon, items) < candidate.coupon.minimum_purchase:
                reason = CouponRejection.BELOW_MINIMUM_PURCHASE
        return reason

    def _skip(self, skipped: List[SkippedCoupon], code: str, reason: CouponRejection) -> None:
        if self.strict:
            raise InvalidCouponError(code, reason)
        logger.info(f"Skipping coupon {code}: {reason.value}")
        skipped.append(SkippedCoupon(code=code, reason=reason.value))

    def resolve_coupons(
        self,
        candidates: Sequence[CouponCandidate],
        customer: Optional[Customer],
        items: Sequence[TransactionItem],
        now: Optional[datetime] = None,
    ):
        """
        Returns:
            Tuple of (resolved coupons, skipped coupons)
        """
        now = now or self.clock()
        skipped: List[SkippedCoupon] = []
        valid: List[Coupon] = []

        for candidate in candidates:
            reason = self.check_coupon(candidate, customer, items, now)
            if reason is not None:
                self._skip(skipped, candidate.code, reason)
            elif any(c.id == candidate.coupon.id for c in valid):
                continue
            else:
                valid.append(candidate.coupon)

        exclusive = next((c for c in valid if not c.stackable), None)
        if exclusive is not None:
            for coupon in valid:
                if coupon is not exclusive:
                    self._skip(skipped, coupon.code, CouponRejection.NOT_STACKABLE)
            chosen = [exclusive]
        else:
            chosen = valid

        subtotal = to_cents(sum((item.base_amount for item in items), ZERO))
        line_discount = to_cents(sum((item.discount_amount for item in items), ZERO))
        remaining = max(ZERO, to_cents(subtotal - line_discount))

        resolved: List[ResolvedCoupon] = []
        for coupon in chosen:
            amount = min(coupon_discount(coupon, items), remaining)
            remaining = to_cents(remaining - amount)
            resolved.append(ResolvedCoupon(coupon=coupon, discount_amount=amount))

        return resolved, skipped

    def resolve(
        self,
        items: Sequence[TransactionItem],
        customer: Optional[Customer],
        candidates: Sequence[CouponCandidate] = (),
        loyalty_points: int = 0,
        now: Optional[datetime] = None,
    ) -> DiscountBreakdown:
        """
        Merge line, coupon and loyalty discounts.

        Raises:
            InsufficientPointsError: more points requested than the balance
            ValidationError: points worth more than the merchandise still due
            InvalidCouponError: only in strict mode
        """
        loyalty_service.check_redeemable(customer, loyalty_points)

        line_discount = to_cents(sum((item.discount_amount for item in items), ZERO))
        resolved, skipped = self.resolve_coupons(candidates, customer, items, now)
        coupon_total = to_cents(sum((r.discount_amount for r in resolved), ZERO))
        loyalty_discount = loyalty_service.redemption_value(loyalty_points)

        amount_due = to_cents(sum((item.line_total for item in items), ZERO) - coupon_total)
        if loyalty_discount > amount_due:
            raise ValidationError(
                "Loyalty redemption exceeds the amount due",
                {"points": loyalty_points, "redemption_value": str(loyalty_discount), "amount_due": str(amount_due)},
            )

        return DiscountBreakdown(
            line_discount=line_discount,
            coupon_discount=coupon_total,
            loyalty_discount=loyalty_discount,
            total_discount=to_cents(line_discount + coupon_total + loyalty_discount),
            coupons=resolved,
            coupons_skipped=skipped,
            loyalty_points_used=loyalty_points,
        )
