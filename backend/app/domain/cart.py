"""
Cart Domain Model

A cart is owned by exactly one checkout session and passed explicitly
through the call chain. It is discarded after settlement or clear().
"""
import uuid
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.errors import ValidationError
from app.domain.customer import Customer
from app.domain.money import ZERO, to_cents, to_decimal
from app.domain.product import PriceType, Product
from app.services import pricing_service


class LineItem(BaseModel):
    """
    One cart line

    Fields:
        line_id: Stable line identifier (refunds reference it)
        quantity: Units; for weight-priced products the number of packages
        weight: Measured weight, required for weight-priced products
        unit_price: Price per unit or per weight unit
        discount: Manual per-line discount in currency
    """

    line_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    product_id: str
    name: str
    category: Optional[str] = None
    price_type: PriceType = PriceType.FIXED
    quantity: int = Field(1, ge=0)
    weight: Optional[Decimal] = None
    unit_price: Decimal = Field(..., ge=0)
    taxable: bool = True
    tax_rate: Decimal = Decimal("0.00")
    discount: Decimal = Field(Decimal("0.00"), ge=0)

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1, weight=None) -> "LineItem":
        return cls(
            product_id=product.id,
            name=product.name,
            category=product.category,
            price_type=product.price_type,
            quantity=quantity,
            weight=None if weight is None else to_decimal(weight),
            unit_price=product.price,
            taxable=product.taxable,
            tax_rate=product.tax_rate,
        )

    @property
    def base_amount(self) -> Decimal:
        return pricing_service.base_amount(self.price_type, self.unit_price, self.quantity, self.weight)

    @property
    def line_total(self) -> Decimal:
        return pricing_service.line_total(self.base_amount, self.discount)


class Cart(BaseModel):
    """Session-scoped cart"""

    items: List[LineItem] = Field(default_factory=list)
    customer: Optional[Customer] = None
    coupon_codes: List[str] = Field(default_factory=list)
    loyalty_points_to_use: int = Field(0, ge=0)
    age_verified: bool = False
    notes: Optional[str] = None

    def _find(self, product_id: str) -> Optional[LineItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    def add_item(self, product: Product, quantity: int = 1, weight=None) -> LineItem:
        existing = self._find(product.id)
        if existing is None:
            item = LineItem.from_product(product, quantity, weight)
            self.items.append(item)
            return item

        if product.is_weight_priced and weight is not None:
            existing.weight = (existing.weight or ZERO) + to_decimal(weight)
        else:
            existing.quantity += quantity
        return existing

    def remove_item(self, product_id: str) -> None:
        self.items = [item for item in self.items if item.product_id != product_id]

    def update_quantity(self, product_id: str, quantity: int) -> None:
        item = self._find(product_id)
        if item is None:
            return
        if quantity <= 0:
            self.remove_item(product_id)
        else:
            item.quantity = quantity

    def update_weight(self, product_id: str, weight) -> None:
        item = self._find(product_id)
        if item is not None and item.price_type == PriceType.WEIGHT:
            item.weight = to_decimal(weight)

    def apply_line_discount(self, product_id: str, discount) -> None:
        item = self._find(product_id)
        if item is None:
            return
        discount = to_cents(discount)
        if discount < 0:
            raise ValidationError("Line discount cannot be negative", {"discount": str(discount)})
        item.discount = discount

    def set_customer(self, customer: Optional[Customer]) -> None:
        self.customer = customer

    def apply_coupon(self, code: str) -> None:
        code = code.strip().upper()
        if code and code not in self.coupon_codes:
            self.coupon_codes.append(code)

    def remove_coupon(self, code: str) -> None:
        code = code.strip().upper()
        self.coupon_codes = [c for c in self.coupon_codes if c != code]

    def set_loyalty_points(self, points: int) -> None:
        self.loyalty_points_to_use = max(0, points)

    def mark_age_verified(self) -> None:
        self.age_verified = True

    def clear(self) -> None:
        self.items = []
        self.customer = None
        self.coupon_codes = []
        self.loyalty_points_to_use = 0
        self.age_verified = False
        self.notes = None

    @property
    def subtotal(self) -> Decimal:
        return to_cents(sum((item.base_amount for item in self.items), ZERO))

    @property
    def is_empty(self) -> bool:
        return not self.items
