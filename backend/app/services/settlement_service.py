"""
Settlement Service
Turns a cart into an immutable transaction record

Settlement runs in two phases inside one unit of work:

1. Plan: resolve products and customer, price every line, check stock,
   re-validate coupons, check the loyalty balance, total and check the
   tender. Nothing is written.
2. Commit: apply every delta through locked per-resource writes, in a
   fixed order (products sorted by id, coupons sorted by id, customer,
   transaction row, cashier counters), then commit.

Any error in either phase leaves storage exactly as it was: the unit of
work rolls back everything applied so far.
"""
import logging
import uuid
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from app.core.clock import as_utc, utcnow
from app.core.errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.domain.actor import OVERRIDE_PRICES, PROCESS_REFUNDS, VOID_TRANSACTIONS, Actor
from app.domain.cart import Cart, LineItem
from app.domain.customer import Customer
from app.domain.money import CENT, ZERO, to_cents, to_decimal
from app.domain.product import PriceType, Product
from app.domain.transaction import (
    Payment,
    PaymentMethod,
    Transaction,
    TransactionItem,
    TransactionStatus,
    transition,
    validate_transition,
)
from app.repositories.base import UnitOfWork
from app.services import loyalty_service, pricing_service
from app.services.discount_service import (
    CouponCandidate,
    DiscountBreakdown,
    DiscountResolver,
    normalize_codes,
)
from app.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


PAYMENT_TOLERANCE = CENT


class SettlementPlan(BaseModel):
    """Fully validated settlement, computed without touching storage"""

    items: List[TransactionItem]
    customer: Optional[Customer] = None
    breakdown: DiscountBreakdown
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    loyalty_points_earned: int = 0
    stock_demand: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def to_dict(self) -> dict:
        return {
            "items": [item.model_dump(mode="json") for item in self.items],
            "customer_id": self.customer.id if self.customer else None,
            "subtotal": str(self.subtotal),
            "line_discount": str(self.breakdown.line_discount),
            "coupon_discount": str(self.breakdown.coupon_discount),
            "loyalty_discount": str(self.breakdown.loyalty_discount),
            "discount_amount": str(self.breakdown.total_discount),
            "tax_amount": str(self.tax_amount),
            "total_amount": str(self.total_amount),
            "coupons_used": [c.model_dump(mode="json") for c in self.breakdown.coupons_applied],
            "coupons_skipped": [c.model_dump(mode="json") for c in self.breakdown.coupons_skipped],
            "loyalty_points_used": self.breakdown.loyalty_points_used,
            "loyalty_points_earned": self.loyalty_points_earned,
        }


class RefundLine(BaseModel):
    line_id: str
    quantity: int = Field(..., ge=1)


def stock_units(price_type: PriceType, quantity: int) -> int:
    """Units withdrawn from stock; weight-priced lines withdraw their package count"""
    if PriceType(price_type) == PriceType.WEIGHT:
        return quantity or 1
    return quantity


def check_payment(total, payments: Sequence[Payment]) -> Tuple[Decimal, Decimal]:
    """
    Tender must cover the total within a one-cent tolerance.

    Returns:
        Tuple of (amount tendered, change)
    """
    total = to_decimal(total)
    tendered = to_cents(sum((p.amount for p in payments), ZERO))
    if tendered < total - PAYMENT_TOLERANCE:
        raise InsufficientPaymentError(to_cents(total), tendered)
    change = max(ZERO, to_cents(tendered - total))
    return tendered, change


def order_discount_shares(transaction: Transaction) -> Dict[str, Decimal]:
    """
    Split the coupon and loyalty discounts of a sale across its lines in
    proportion to each line total. The last line takes the rounding
    remainder so the shares add up to the order-level discount.
    """
    net = to_cents(sum((item.line_total for item in transaction.items), ZERO))
    pool = min(to_cents(transaction.coupon_discount + transaction.loyalty_discount), net)
    if pool <= ZERO:
        return {item.line_id: ZERO for item in transaction.items}

    shares: Dict[str, Decimal] = {}
    allocated = ZERO
    last = len(transaction.items) - 1
    for index, item in enumerate(transaction.items):
        share = pool - allocated if index == last else to_cents(pool * item.line_total / net)
        shares[item.line_id] = share
        allocated += share
    return shares


def prorate(amount: Decimal, already: int, quantity: int, of: int) -> Decimal:
    """Part of amount for units already+1 .. already+quantity out of `of`"""
    return to_cents(amount * (already + quantity) / of) - to_cents(amount * already / of)


def _normalize_payments(payments) -> List[Payment]:
    if not payments:
        raise ValidationError("At least one payment is required")

    normalized = [p if isinstance(p, Payment) else Payment.model_validate(p) for p in payments]
    for payment in normalized:
        if payment.amount <= 0:
            raise ValidationError(
                "Payment amounts must be positive",
                {"method": payment.method.value, "amount": str(payment.amount)},
            )
    return normalized


def _new_number(prefix: str, at: datetime) -> str:
    return f"{prefix}{at:%Y%m%d%H%M%S}{uuid.uuid4().hex[:6].upper()}"


class SettlementService:
    """
    Settlement orchestrator: create, quote, void and refund transactions.

    Args:
        uow_factory: Returns a fresh UnitOfWork
        resolver: Discount resolver (coupon windows use its clock/timezone)
        clock: Returns "now" (timezone-aware)
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        resolver: Optional[DiscountResolver] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow_factory = uow_factory
        self.clock = clock
        self.resolver = resolver or DiscountResolver(clock=clock)

    # ============================================================
    # PLANNING
    # ============================================================

    def _load_customer(self, uow: UnitOfWork, cart: Cart) -> Optional[Customer]:
        if cart.customer is None:
            return None
        customer = uow.customers.find_by_id(cart.customer.id)
        if customer is None:
            raise NotFoundError("Customer", cart.customer.id)
        return customer

    def _load_product(self, uow: UnitOfWork, product_id: str) -> Product:
        product = uow.products.find_by_id(product_id)
        if product is None or not product.is_active:
            raise NotFoundError("Product", product_id)
        return product

    def _price_line(self, line: LineItem, product: Product, tax_exempt: bool, actor: Actor) -> TransactionItem:
        unit_price = to_cents(line.unit_price)
        if unit_price != to_cents(product.price) and not actor.can(OVERRIDE_PRICES):
            raise PermissionDeniedError(OVERRIDE_PRICES)

        base = pricing_service.base_amount(product.price_type, unit_price, line.quantity, line.weight)
        total = pricing_service.line_total(base, line.discount)
        tax = pricing_service.line_tax(product.taxable, product.tax_rate, tax_exempt, total)

        return TransactionItem(
            line_id=line.line_id,
            product_id=product.id,
            name=product.name,
            barcode=product.barcode,
            plu=product.plu,
            category=product.category,
            price_type=product.price_type,
            quantity=stock_units(product.price_type, line.quantity),
            weight=line.weight if product.is_weight_priced else None,
            unit_price=unit_price,
            base_amount=base,
            discount_amount=to_cents(line.discount),
            line_total=total,
            taxable=product.taxable,
            tax_rate=product.tax_rate,
            tax_amount=tax,
        )

    def _coupon_candidates(self, uow: UnitOfWork, codes: Sequence[str], customer: Optional[Customer]) -> List[CouponCandidate]:
        candidates = []
        for code in normalize_codes(codes):
            coupon = uow.coupons.find_by_code(code)
            redemptions = None
            if coupon is not None and customer is not None:
                redemptions = uow.coupons.count_customer_redemptions(coupon.id, customer.id)
            candidates.append(CouponCandidate(code=code, coupon=coupon, customer_redemptions=redemptions))
        return candidates

    def _plan(
        self,
        uow: UnitOfWork,
        cart: Cart,
        coupon_codes: Sequence[str],
        loyalty_points: int,
        actor: Actor,
        now: datetime,
    ) -> SettlementPlan:
        if cart.is_empty:
            raise ValidationError("Transaction must contain at least one item")

        customer = self._load_customer(uow, cart)
        tax_exempt = customer.tax_exempt if customer else False

        items: List[TransactionItem] = []
        demand: Dict[str, int] = OrderedDict()
        for line in cart.items:
            product = self._load_product(uow, line.product_id)
            if product.age_restricted and not cart.age_verified:
                raise ValidationError(
                    f"Age verification required for {product.name}",
                    {"product_id": product.id, "minimum_age": product.minimum_age},
                )

            item = self._price_line(line, product, tax_exempt, actor)
            demand[product.id] = demand.get(product.id, 0) + item.quantity
            if product.stock_quantity < demand[product.id]:
                raise InsufficientStockError(product.id, product.name, product.stock_quantity, demand[product.id])
            items.append(item)

        candidates = self._coupon_candidates(uow, coupon_codes, customer)
        breakdown = self.resolver.resolve(items, customer, candidates, loyalty_points, now)

        subtotal = to_cents(sum((item.base_amount for item in items), ZERO))
        tax_amount = to_cents(sum((item.tax_amount for item in items), ZERO))
        total = max(ZERO, to_cents(subtotal - breakdown.total_discount + tax_amount))

        return SettlementPlan(
            items=items,
            customer=customer,
            breakdown=breakdown,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total,
            loyalty_points_earned=loyalty_service.points_earned(customer, total),
            stock_demand=dict(demand),
        )

    @staticmethod
    def _requested(cart: Cart, coupon_codes, loyalty_points_to_use) -> Tuple[List[str], int]:
        codes = cart.coupon_codes if coupon_codes is None else coupon_codes
        points = cart.loyalty_points_to_use if loyalty_points_to_use is None else loyalty_points_to_use
        return list(codes), int(points or 0)

    def quote(
        self,
        cart: Cart,
        coupon_codes: Optional[Sequence[str]] = None,
        loyalty_points_to_use: Optional[int] = None,
        *,
        actor: Actor,
    ) -> SettlementPlan:
        """Totals and breakdown for the cart; mutates nothing"""
        codes, points = self._requested(cart, coupon_codes, loyalty_points_to_use)
        with self.uow_factory() as uow:
            return self._plan(uow, cart, codes, points, actor, self.clock())

    # ============================================================
    # SETTLEMENT
    # ============================================================

    def create_transaction(
        self,
        cart: Cart,
        payments: Sequence[Union[Payment, dict]],
        coupon_codes: Optional[Sequence[str]] = None,
        loyalty_points_to_use: Optional[int] = None,
        *,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Transaction:
        """
        Settle a cart.

        Coupon codes and loyalty points default to what the cart carries.

        Raises:
            ValidationError, NotFoundError, InsufficientStockError,
            InsufficientPaymentError, InsufficientPointsError,
            InvalidCouponError (strict mode or usage cap reached at commit),
            PermissionDeniedError
        """
        if cart.is_empty:
            raise ValidationError("Transaction must contain at least one item")
        tenders = _normalize_payments(payments)
        codes, points = self._requested(cart, coupon_codes, loyalty_points_to_use)
        now = self.clock()

        with self.uow_factory() as uow:
            plan = self._plan(uow, cart, codes, points, actor, now)
            tendered, change = check_payment(plan.total_amount, tenders)

            transaction_id = uuid.uuid4().hex
            transaction_number = _new_number("TXN", now)
            customer_id = plan.customer.id if plan.customer else None

            ledger = InventoryLedger(uow.products)
            for product_id in sorted(plan.stock_demand):
                ledger.withdraw(product_id, plan.stock_demand[product_id], reason=f"Sale {transaction_number}")

            for resolved in sorted(plan.breakdown.coupons, key=lambda r: r.coupon.id):
                uow.coupons.redeem(resolved.coupon.id, customer_id, transaction_id)

            points_earned = 0
            if plan.customer is not None:
                before, after = uow.customers.update_locked(
                    customer_id,
                    lambda locked: loyalty_service.apply_purchase(
                        locked,
                        plan.total_amount,
                        points,
                        loyalty_service.points_earned(locked, plan.total_amount),
                        now,
                    ),
                )
                # Earned at the locked tier, which may differ from the planning read
                points_earned = after.loyalty.points - before.loyalty.points + points

            transaction = Transaction(
                id=transaction_id,
                transaction_number=transaction_number,
                receipt_number=_new_number("RCP", now),
                items=tuple(plan.items),
                customer_id=customer_id,
                cashier_id=actor.id,
                subtotal=plan.subtotal,
                line_discount=plan.breakdown.line_discount,
                coupon_discount=plan.breakdown.coupon_discount,
                loyalty_discount=plan.breakdown.loyalty_discount,
                discount_amount=plan.breakdown.total_discount,
                tax_amount=plan.tax_amount,
                total_amount=plan.total_amount,
                payments=tuple(tenders),
                amount_tendered=tendered,
                change_given=change,
                coupons_used=tuple(plan.breakdown.coupons_applied),
                coupons_skipped=tuple(plan.breakdown.coupons_skipped),
                loyalty_points_earned=points_earned,
                loyalty_points_used=points,
                status=TransactionStatus.COMPLETED,
                notes=notes if notes is not None else cart.notes,
                created_at=now,
            )
            uow.transactions.insert(transaction)
            uow.cashiers.record_sale(actor.id, plan.total_amount)
            uow.commit()

        logger.info(
            f"Transaction {transaction.transaction_number} completed by {actor.id}: "
            f"total={transaction.total_amount} items={len(transaction.items)} "
            f"coupons={[c.code for c in transaction.coupons_used]} points_earned={points_earned}"
        )
        return transaction

    # ============================================================
    # COMPENSATING OPERATIONS
    # ============================================================

    def _load_original(self, uow: UnitOfWork, transaction_id: str) -> Transaction:
        original = uow.transactions.find_by_id(transaction_id, for_update=True)
        if original is None:
            raise NotFoundError("Transaction", transaction_id)
        if original.is_refund:
            raise ValidationError("Refund transactions cannot be voided or refunded", {"transaction_id": transaction_id})
        return original

    @staticmethod
    def _refunded_quantities(uow: UnitOfWork, original: Transaction) -> Dict[str, int]:
        refunded: Dict[str, int] = {}
        for refund in uow.transactions.find_refunds(original.id):
            if refund.status != TransactionStatus.COMPLETED:
                continue
            for item in refund.items:
                refunded[item.line_id] = refunded.get(item.line_id, 0) + abs(item.quantity)
        return refunded

    def void_transaction(self, transaction_id: str, reason: str, actor: Actor) -> Transaction:
        """
        Void a completed sale: restock every unit not already refunded,
        reverse purchase history and loyalty deltas, flip status to voided.
        Coupon usage counters are not released.
        """
        if not actor.can(VOID_TRANSACTIONS):
            raise PermissionDeniedError(VOID_TRANSACTIONS)
        if not reason or not reason.strip():
            raise ValidationError("Void reason is required")
        now = self.clock()

        with self.uow_factory() as uow:
            original = self._load_original(uow, transaction_id)
            voided = transition(original, TransactionStatus.VOIDED, now, reason)

            refunded = self._refunded_quantities(uow, original)
            restock: Dict[str, int] = {}
            for item in original.items:
                units = item.quantity - refunded.get(item.line_id, 0)
                if units > 0:
                    restock[item.product_id] = restock.get(item.product_id, 0) + units

            ledger = InventoryLedger(uow.products)
            for product_id in sorted(restock):
                ledger.add(product_id, restock[product_id], reason=f"Void {original.transaction_number}")

            if original.customer_id:
                uow.customers.update_locked(
                    original.customer_id,
                    lambda locked: loyalty_service.reverse_purchase(
                        locked,
                        original.total_amount,
                        original.loyalty_points_used,
                        original.loyalty_points_earned,
                    ),
                )

            uow.transactions.update_status(voided, TransactionStatus.COMPLETED)
            uow.commit()

        logger.info(f"Transaction {original.transaction_number} voided by {actor.id}: {reason}")
        return voided

    def refund_transaction(
        self,
        transaction_id: str,
        items: Sequence[Union[RefundLine, dict]],
        reason: str,
        refund_method: Optional[PaymentMethod] = None,
        actor: Optional[Actor] = None,
    ) -> Transaction:
        """
        Refund part or all of a completed sale as a separate transaction
        with negated amounts. Each refunded unit gives back its line total
        less its share of the sale's coupon and loyalty discounts, plus its
        tax. Loyalty points are not reversed. The original becomes refunded
        once every line has been fully refunded.
        """
        if actor is None or not actor.can(PROCESS_REFUNDS):
            raise PermissionDeniedError(PROCESS_REFUNDS)
        if not items:
            raise ValidationError("Refund items are required")
        if not reason or not reason.strip():
            raise ValidationError("Refund reason is required")

        requested: Dict[str, int] = OrderedDict()
        for line in items:
            line = line if isinstance(line, RefundLine) else RefundLine.model_validate(line)
            requested[line.line_id] = requested.get(line.line_id, 0) + line.quantity

        now = self.clock()
        with self.uow_factory() as uow:
            original = self._load_original(uow, transaction_id)
            validate_transition(original, TransactionStatus.REFUNDED)

            refunded = self._refunded_quantities(uow, original)
            order_discounts = order_discount_shares(original)
            refund_items: List[TransactionItem] = []
            restock: Dict[str, int] = {}
            for line_id, quantity in requested.items():
                item = original.item(line_id)
                if item is None:
                    raise ValidationError(f"Item not found in original transaction: {line_id}", {"line_id": line_id})
                remaining = item.quantity - refunded.get(line_id, 0)
                if quantity > remaining:
                    raise ValidationError(
                        f"Refund quantity exceeds original quantity for item: {item.name}",
                        {"line_id": line_id, "requested": quantity, "refundable": remaining},
                    )

                already = refunded.get(line_id, 0)
                amount = prorate(item.line_total, already, quantity, item.quantity)
                discount = prorate(order_discounts[line_id], already, quantity, item.quantity)
                tax = prorate(item.tax_amount, already, quantity, item.quantity)
                share = Decimal(quantity) / Decimal(item.quantity)
                refund_items.append(item.model_copy(update={
                    "quantity": -quantity,
                    "weight": -(item.weight * share) if item.weight is not None else None,
                    "base_amount": -amount,
                    "discount_amount": -discount,
                    "line_total": -(amount - discount),
                    "tax_amount": -tax,
                }))
                restock[item.product_id] = restock.get(item.product_id, 0) + quantity
                refunded[line_id] = already + quantity

            subtotal = to_cents(sum((i.base_amount for i in refund_items), ZERO))
            discount_amount = to_cents(sum((i.discount_amount for i in refund_items), ZERO))
            tax_amount = to_cents(sum((i.tax_amount for i in refund_items), ZERO))
            total = to_cents(subtotal - discount_amount + tax_amount)
            method = PaymentMethod(refund_method) if refund_method else original.payments[0].method

            ledger = InventoryLedger(uow.products)
            for product_id in sorted(restock):
                ledger.add(product_id, restock[product_id], reason=f"Refund {original.transaction_number}")

            refund = Transaction(
                id=uuid.uuid4().hex,
                transaction_number=_new_number("TXN", now),
                receipt_number=_new_number("RCP", now),
                items=tuple(refund_items),
                customer_id=original.customer_id,
                cashier_id=actor.id,
                subtotal=subtotal,
                discount_amount=discount_amount,
                tax_amount=tax_amount,
                total_amount=total,
                payments=(Payment(method=method, amount=total),),
                amount_tendered=total,
                status=TransactionStatus.COMPLETED,
                refund_of=original.id,
                refund_reason=reason,
                notes=f"Refund for transaction {original.transaction_number}. Reason: {reason}",
                created_at=now,
            )
            uow.transactions.insert(refund)

            if all(refunded.get(i.line_id, 0) >= i.quantity for i in original.items):
                uow.transactions.update_status(
                    transition(original, TransactionStatus.REFUNDED, now, reason),
                    TransactionStatus.COMPLETED,
                )
            uow.commit()

        logger.info(
            f"Refund {refund.transaction_number} for {original.transaction_number} "
            f"processed by {actor.id}: {refund.total_amount}"
        )
        return refund

    # ============================================================
    # QUERIES
    # ============================================================

    def get_transaction(self, transaction_id: str) -> Transaction:
        with self.uow_factory() as uow:
            transaction = uow.transactions.find_by_id(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        cashier_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Transaction], int]:
        with self.uow_factory() as uow:
            return uow.transactions.find_all(
                status=status,
                cashier_id=cashier_id,
                customer_id=customer_id,
                from_date=as_utc(from_date),
                to_date=as_utc(to_date),
                limit=limit,
                offset=offset,
            )

    def validate_coupon(self, code: str, customer_id: Optional[str] = None) -> dict:
        """Whether a coupon is redeemable right now, with the reason if not"""
        with self.uow_factory() as uow:
            customer = None
            if customer_id:
                customer = uow.customers.find_by_id(customer_id)
                if customer is None:
                    raise NotFoundError("Customer", customer_id)
            candidate = self._coupon_candidates(uow, [code], customer)[0]

        reason = self.resolver.check_coupon(candidate, customer)
        coupon = candidate.coupon
        return {
            "code": candidate.code,
            "valid": reason is None,
            "reason": reason.value if reason else None,
            "coupon": coupon.model_dump(mode="json") if coupon and reason is None else None,
        }
