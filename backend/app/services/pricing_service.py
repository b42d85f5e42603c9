"""
Pricing and tax calculators.

Pure functions over primitives so they can be shared by the cart preview
and the settlement planner.
"""
from decimal import Decimal
from typing import Optional

from app.core.errors import ValidationError
from app.domain.money import ZERO, to_cents, to_decimal
from app.domain.product import PriceType


def base_amount(
    price_type: PriceType,
    unit_price,
    quantity: int = 1,
    weight: Optional[Decimal] = None,
) -> Decimal:
    """
    Pre-discount amount for a line.

    fixed:  quantity x unit price
    weight: measured weight x price per weight unit

    Raises:
        ValidationError: weight-priced line without a positive weight,
            fixed line with non-positive quantity
    """
    price = to_decimal(unit_price)
    if price < 0:
        raise ValidationError("Unit price cannot be negative", {"unit_price": str(price)})

    if PriceType(price_type) == PriceType.WEIGHT:
        if weight is None or to_decimal(weight) <= 0:
            raise ValidationError(
                "Weight-priced items require a positive weight",
                {"weight": None if weight is None else str(weight)},
            )
        return to_cents(to_decimal(weight) * price)

    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be positive", {"quantity": quantity})
    return to_cents(Decimal(quantity) * price)


def line_total(base, discount) -> Decimal:
    """
    base - discount. A discount larger than the base amount is a caller
    error, never clamped.
    """
    base = to_cents(base)
    discount = to_cents(discount or ZERO)
    if discount < 0:
        raise ValidationError("Line discount cannot be negative", {"discount": str(discount)})
    if discount > base:
        raise ValidationError(
            "Line discount exceeds line amount",
            {"discount": str(discount), "base_amount": str(base)},
        )
    return to_cents(base - discount)


def taxable_amount(taxable: bool, customer_tax_exempt: bool, post_discount_amount) -> Decimal:
    if not taxable or customer_tax_exempt:
        return ZERO
    return to_cents(post_discount_amount)


def line_tax(taxable: bool, tax_rate, customer_tax_exempt: bool, post_discount_amount) -> Decimal:
    """
    Tax for one line, computed on the amount after the line's own discount.
    Coupon and loyalty discounts are order-level and do not reduce this base.
    """
    amount = taxable_amount(taxable, customer_tax_exempt, post_discount_amount)
    if amount == ZERO:
        return ZERO
    return to_cents(amount * to_decimal(tax_rate))
