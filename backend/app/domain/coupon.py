"""
Coupon Domain Model

The discount is a tagged union: each variant carries only the payload it
needs, discriminated by ``type``.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.domain.customer import LoyaltyTier


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BOGO = "bogo"
    BUY_X_GET_Y = "buy_x_get_y"


class PercentageDiscount(BaseModel):
    type: Literal["percentage"] = "percentage"
    percent: Decimal = Field(..., ge=0, le=100)
    maximum_discount: Optional[Decimal] = Field(None, ge=0)

    model_config = ConfigDict(frozen=True)


class FixedAmountDiscount(BaseModel):
    type: Literal["fixed_amount"] = "fixed_amount"
    amount: Decimal = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class BogoDiscount(BaseModel):
    """Buy one, get one free on every matching line"""

    type: Literal["bogo"] = "bogo"

    model_config = ConfigDict(frozen=True)


class BuyXGetYDiscount(BaseModel):
    """Reserved variant; currently yields no discount"""

    type: Literal["buy_x_get_y"] = "buy_x_get_y"
    buy_quantity: int = Field(1, ge=1)
    get_quantity: int = Field(1, ge=1)

    model_config = ConfigDict(frozen=True)


Discount = Annotated[
    Union[PercentageDiscount, FixedAmountDiscount, BogoDiscount, BuyXGetYDiscount],
    Field(discriminator="type"),
]


def discount_from_columns(discount_type: str, value, maximum_discount=None):
    """Build the discount variant from flat storage columns"""
    kind = DiscountType(discount_type)
    if kind == DiscountType.PERCENTAGE:
        return PercentageDiscount(percent=value, maximum_discount=maximum_discount)
    if kind == DiscountType.FIXED_AMOUNT:
        return FixedAmountDiscount(amount=value)
    if kind == DiscountType.BOGO:
        return BogoDiscount()
    return BuyXGetYDiscount()


class Coupon(BaseModel):
    """
    Coupon domain model

    Fields:
        code: Unique, stored upper-case
        discount: Discount variant and its payload
        minimum_purchase: Minimum eligible subtotal
        applicable_products / applicable_categories: Allow-lists (empty = everything)
        excluded_products: Never discounted
        usage_limit_total: Global cap (None = unlimited)
        usage_limit_per_customer: Per-customer cap (None = unlimited)
        current_usage: Redemptions so far
        valid_from / valid_until: Validity interval
        stackable: May combine with other coupons
        requires_loyalty_membership / minimum_loyalty_tier: Loyalty predicates
        day_of_week_restrictions: Allowed days, 0 = Sunday ... 6 = Saturday
        time_start / time_end: Allowed "HH:MM" window (inclusive)
    """

    id: str = Field(..., description="Coupon ID")
    code: str = Field(..., description="Coupon code")
    name: str = Field(..., description="Coupon name")
    description: Optional[str] = None
    discount: Discount

    minimum_purchase: Decimal = Field(Decimal("0.00"), ge=0)

    applicable_products: List[str] = Field(default_factory=list)
    applicable_categories: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)

    usage_limit_total: Optional[int] = Field(None, ge=0)
    usage_limit_per_customer: Optional[int] = Field(1, ge=0)
    current_usage: int = Field(0, ge=0)

    valid_from: datetime
    valid_until: datetime

    stackable: bool = False
    requires_loyalty_membership: bool = False
    minimum_loyalty_tier: LoyaltyTier = LoyaltyTier.BRONZE
    day_of_week_restrictions: List[int] = Field(default_factory=list)
    time_start: Optional[str] = Field(None, description="HH:MM")
    time_end: Optional[str] = Field(None, description="HH:MM")

    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)

    @field_validator("code")
    @classmethod
    def _upper_code(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def discount_type(self) -> DiscountType:
        return DiscountType(self.discount.type)

    @property
    def has_allow_list(self) -> bool:
        return bool(self.applicable_products or self.applicable_categories)

    def applies_to(self, product_id: str, category: Optional[str]) -> bool:
        """Whether a line for this product is eligible for the discount"""
        if product_id in self.excluded_products:
            return False
        if not self.has_allow_list:
            return True
        return product_id in self.applicable_products or (
            category is not None and category in self.applicable_categories
        )
