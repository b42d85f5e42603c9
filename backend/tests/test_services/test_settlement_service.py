"""
Tests for SettlementService against the in-memory store

Covers the settle / void / refund lifecycle and the all-or-nothing
guarantee: any failure leaves stock, coupon usage, loyalty balances and
the transaction log exactly as they were.
"""
import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from app.core.errors import (
    CapacityExceededError,
    InsufficientPaymentError,
    InsufficientPointsError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.domain.cart import Cart
from app.domain.customer import LoyaltyTier
from app.domain.transaction import Payment, PaymentMethod, TransactionStatus
from app.services.settlement_service import RefundLine, SettlementService, check_payment, order_discount_shares


def cash(amount):
    return [Payment(method=PaymentMethod.CASH, amount=Decimal(amount))]


def make_cart(db, *lines, customer_id=None):
    """lines: (product_id, quantity) or (product_id, quantity, weight)"""
    cart = Cart()
    for line in lines:
        product_id, quantity = line[0], line[1]
        weight = line[2] if len(line) > 2 else None
        cart.add_item(db.products[product_id], quantity, weight)
    if customer_id:
        cart.set_customer(db.customers[customer_id])
    return cart


def stock(db, product_id):
    return db.products[product_id].stock_quantity


def give_points(db, customer_id, points):
    customer = db.customers[customer_id].model_copy(deep=True)
    customer.loyalty.points = points
    db.customers[customer_id] = customer


class TestCreateTransaction:
    """Happy-path settlement"""

    def test_guest_sale_totals(self, db, service, cashier):
        """1 soap at $10 (8% tax) plus 2 lb of apples at $2/lb, paid with $20"""
        # Arrange
        cart = make_cart(db, ("P-SOAP", 1), ("P-APPLE", 1, "2"))

        # Act
        transaction = service.create_transaction(cart, cash("20.00"), actor=cashier)

        # Assert
        assert transaction.subtotal == Decimal("14.00")
        assert transaction.tax_amount == Decimal("0.80")
        assert transaction.total_amount == Decimal("14.80")
        assert transaction.change_given == Decimal("5.20")
        assert transaction.status == TransactionStatus.COMPLETED
        assert transaction.customer_id is None
        assert transaction.loyalty_points_earned == 0

    def test_sale_withdraws_stock_and_records_cashier(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 3), ("P-APPLE", 1, "1.5"))

        transaction = service.create_transaction(cart, cash("50.00"), actor=cashier)

        assert stock(db, "P-SOAP") == 47
        # Weight lines withdraw their package count
        assert stock(db, "P-APPLE") == 99
        assert db.transactions[transaction.id] == transaction
        assert db.cashiers["E-100"]["total_transactions"] == 1
        assert db.cashiers["E-100"]["total_sales"] == transaction.total_amount

    def test_member_sale_with_coupon_and_points(self, db, service, cashier):
        """6 soap: 60.00 - 6.00 (SAVE10) - 1.00 (100 points) + 4.80 tax"""
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")
        cart.apply_coupon("save10")
        cart.set_loyalty_points(100)

        transaction = service.create_transaction(cart, cash("60.00"), actor=cashier)

        assert transaction.coupon_discount == Decimal("6.00")
        assert transaction.loyalty_discount == Decimal("1.00")
        assert transaction.discount_amount == Decimal("7.00")
        assert transaction.total_amount == Decimal("57.80")
        assert [c.code for c in transaction.coupons_used] == ["SAVE10"]
        assert transaction.loyalty_points_used == 100

        customer = db.customers["C-GOLD"]
        assert customer.loyalty.points == 200
        assert customer.purchase_history.total_transactions == 21
        assert customer.purchase_history.total_spent == Decimal("2657.80")
        assert db.coupons["CPN-1"].current_usage == 1
        assert len(db.coupon_redemptions) == 1

    def test_points_earned_at_tier_held_before_purchase(self, db, service, cashier):
        """40 soap = 432.00: 4 base points at bronze, promotion to silver afterwards"""
        cart = make_cart(db, ("P-SOAP", 40), customer_id="C-NEAR")

        transaction = service.create_transaction(cart, cash("432.00"), actor=cashier)

        customer = db.customers["C-NEAR"]
        assert transaction.loyalty_points_earned == 4
        assert customer.loyalty.points == 44
        assert customer.loyalty.tier == LoyaltyTier.SILVER

    def test_gold_member_multiplier(self, db, service, cashier):
        """10 rice = 300.00 untaxed: floor(3 x 1.5) = 4"""
        cart = make_cart(db, ("P-RICE", 10), customer_id="C-GOLD")

        transaction = service.create_transaction(cart, cash("300.00"), actor=cashier)

        assert transaction.loyalty_points_earned == 4
        assert stock(db, "P-RICE") == 0

    def test_non_stackable_coupon_wins(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")

        transaction = service.create_transaction(
            cart, cash("100.00"), coupon_codes=["SAVE10", "FIVEOFF"], actor=cashier
        )

        assert [c.code for c in transaction.coupons_used] == ["SAVE10"]
        assert [(s.code, s.reason) for s in transaction.coupons_skipped] == [("FIVEOFF", "not_stackable")]
        assert db.coupons["CPN-2"].current_usage == 0

    def test_per_customer_limit_skips_second_use(self, db, service, cashier):
        for _ in range(2):
            cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")
            cart.apply_coupon("SAVE10")
            transaction = service.create_transaction(cart, cash("100.00"), actor=cashier)

        assert transaction.coupons_used == ()
        assert transaction.coupons_skipped[0].reason == "customer_usage_exceeded"
        assert db.coupons["CPN-1"].current_usage == 1

    def test_tax_exempt_customer_pays_no_tax(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 2), customer_id="C-EXEMPT")

        transaction = service.create_transaction(cart, cash("20.00"), actor=cashier)

        assert transaction.tax_amount == Decimal("0.00")
        assert transaction.total_amount == Decimal("20.00")

    def test_tax_uses_amount_after_line_discount(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1))
        cart.apply_line_discount("P-SOAP", "5.00")

        transaction = service.create_transaction(cart, cash("10.00"), actor=cashier)

        assert transaction.items[0].line_total == Decimal("5.00")
        assert transaction.tax_amount == Decimal("0.40")
        assert transaction.total_amount == Decimal("5.40")

    def test_payment_within_one_cent_is_accepted(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1), ("P-APPLE", 1, "2"))

        transaction = service.create_transaction(cart, cash("14.79"), actor=cashier)

        assert transaction.change_given == Decimal("0.00")

    def test_split_tender(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1))
        payments = [
            {"method": "gift_card", "amount": "5.00"},
            {"method": "credit", "amount": "5.80", "card_last4": "4242"},
        ]

        transaction = service.create_transaction(cart, payments, actor=cashier)

        assert transaction.amount_tendered == Decimal("10.80")
        assert [p.method for p in transaction.payments] == [PaymentMethod.GIFT_CARD, PaymentMethod.CREDIT]


class TestSettlementValidation:
    """Failures during planning mutate nothing"""

    def test_empty_cart_rejected(self, service, cashier):
        with pytest.raises(ValidationError):
            service.create_transaction(Cart(), cash("1.00"), actor=cashier)

    def test_missing_payments_rejected(self, db, service, cashier):
        with pytest.raises(ValidationError):
            service.create_transaction(make_cart(db, ("P-SOAP", 1)), [], actor=cashier)

    def test_insufficient_payment(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1))

        with pytest.raises(InsufficientPaymentError) as exc_info:
            service.create_transaction(cart, cash("10.00"), actor=cashier)

        assert exc_info.value.details == {"required": "10.80", "provided": "10.00"}
        assert stock(db, "P-SOAP") == 50
        assert db.transactions == {}

    def test_shortage_on_later_line_leaves_no_mutation(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1), ("P-RICE", 11))

        with pytest.raises(InsufficientStockError) as exc_info:
            service.create_transaction(cart, cash("400.00"), actor=cashier)

        assert exc_info.value.details["product_id"] == "P-RICE"
        assert exc_info.value.details["available"] == 10
        assert stock(db, "P-SOAP") == 50
        assert stock(db, "P-RICE") == 10

    def test_too_many_points_rejects_whole_request(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")
        cart.apply_coupon("SAVE10")

        with pytest.raises(InsufficientPointsError):
            service.create_transaction(cart, cash("100.00"), loyalty_points_to_use=500, actor=cashier)

        assert db.customers["C-GOLD"].loyalty.points == 300
        assert db.coupons["CPN-1"].current_usage == 0
        assert stock(db, "P-SOAP") == 50

    def test_points_without_customer_rejected(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1))

        with pytest.raises(ValidationError):
            service.create_transaction(cart, cash("20.00"), loyalty_points_to_use=10, actor=cashier)

    def test_points_need_membership(self, db, service, cashier):
        give_points(db, "C-GUEST", 500)
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GUEST")

        with pytest.raises(ValidationError):
            service.create_transaction(cart, cash("100.00"), loyalty_points_to_use=200, actor=cashier)

        assert db.customers["C-GUEST"].loyalty.points == 500
        assert stock(db, "P-SOAP") == 50

    def test_points_worth_more_than_amount_due_rejected(self, db, service, cashier):
        """1000 points = 10.00 against a 4.00 loaf"""
        give_points(db, "C-GOLD", 1000)
        cart = make_cart(db, ("P-BREAD", 1), customer_id="C-GOLD")

        with pytest.raises(ValidationError) as exc_info:
            service.create_transaction(cart, cash("4.00"), loyalty_points_to_use=1000, actor=cashier)

        assert exc_info.value.details["amount_due"] == "4.00"
        assert db.customers["C-GOLD"].loyalty.points == 1000
        assert stock(db, "P-BREAD") == 20

    def test_points_covering_amount_due_exactly(self, db, service, cashier):
        give_points(db, "C-GOLD", 1000)
        cart = make_cart(db, ("P-BREAD", 1), customer_id="C-GOLD")

        transaction = service.create_transaction(cart, cash("0.01"), loyalty_points_to_use=400, actor=cashier)

        assert transaction.total_amount == Decimal("0.00")
        assert db.customers["C-GOLD"].loyalty.points == 600

    def test_unknown_customer(self, db, service, cashier, customers):
        cart = make_cart(db, ("P-SOAP", 1))
        cart.set_customer(customers[0].model_copy(update={"id": "C-MISSING"}))

        with pytest.raises(NotFoundError):
            service.create_transaction(cart, cash("20.00"), actor=cashier)

    def test_inactive_product_rejected(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 1))
        db.products["P-SOAP"] = db.products["P-SOAP"].model_copy(update={"is_active": False})

        with pytest.raises(NotFoundError):
            service.create_transaction(cart, cash("20.00"), actor=cashier)

    def test_age_restricted_item_needs_verification(self, db, service, cashier):
        cart = make_cart(db, ("P-WINE", 1))

        with pytest.raises(ValidationError):
            service.create_transaction(cart, cash("20.00"), actor=cashier)

        cart.mark_age_verified()
        transaction = service.create_transaction(cart, cash("20.00"), actor=cashier)
        assert transaction.total_amount == Decimal("16.20")

    def test_price_override_needs_permission(self, db, service, cashier, supervisor):
        cart = make_cart(db, ("P-SOAP", 1))
        cart.items[0].unit_price = Decimal("8.00")

        with pytest.raises(PermissionDeniedError):
            service.create_transaction(cart, cash("20.00"), actor=cashier)

        transaction = service.create_transaction(cart, cash("20.00"), actor=supervisor)
        assert transaction.subtotal == Decimal("8.00")

    def test_commit_failure_rolls_everything_back(self, db, resolver, clock, cashier):
        """A failure after stock, coupon and points were written restores all of them"""
        def failing_uow():
            uow = db.unit_of_work()
            uow.cashiers = MagicMock()
            uow.cashiers.record_sale.side_effect = RuntimeError("register offline")
            return uow

        service = SettlementService(failing_uow, resolver=resolver, clock=clock)
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")
        cart.apply_coupon("SAVE10")
        cart.set_loyalty_points(100)

        with pytest.raises(RuntimeError):
            service.create_transaction(cart, cash("60.00"), actor=cashier)

        assert stock(db, "P-SOAP") == 50
        assert db.coupons["CPN-1"].current_usage == 0
        assert db.coupon_redemptions == []
        assert db.customers["C-GOLD"].loyalty.points == 300
        assert db.customers["C-GOLD"].purchase_history.total_transactions == 20
        assert db.transactions == {}


class TestQuote:

    def test_quote_mutates_nothing(self, db, service, cashier):
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")
        cart.apply_coupon("SAVE10")

        plan = service.quote(cart, loyalty_points_to_use=50, actor=cashier)

        assert plan.total_amount == Decimal("58.30")
        assert plan.loyalty_points_earned == 0
        assert plan.to_dict()["coupons_used"][0]["code"] == "SAVE10"
        assert stock(db, "P-SOAP") == 50
        assert db.coupons["CPN-1"].current_usage == 0
        assert db.customers["C-GOLD"].loyalty.points == 300


class TestCheckPayment:

    def test_one_cent_tolerance(self):
        tendered, change = check_payment(Decimal("19.995"), cash("20.00"))

        assert tendered == Decimal("20.00")
        assert change == Decimal("0.00")

    def test_short_by_more_than_a_cent(self):
        with pytest.raises(InsufficientPaymentError):
            check_payment(Decimal("19.995"), cash("19.98"))


class TestVoid:

    def test_void_restores_prior_state(self, db, service, cashier, supervisor):
        # Arrange
        cart = make_cart(db, ("P-SOAP", 6), ("P-APPLE", 1, "2"), customer_id="C-GOLD")
        cart.apply_coupon("SAVE10")
        cart.set_loyalty_points(100)
        transaction = service.create_transaction(cart, cash("70.00"), actor=cashier)

        # Act
        voided = service.void_transaction(transaction.id, "customer changed mind", supervisor)

        # Assert
        assert voided.status == TransactionStatus.VOIDED
        assert voided.void_reason == "customer changed mind"
        assert stock(db, "P-SOAP") == 50
        assert stock(db, "P-APPLE") == 100
        customer = db.customers["C-GOLD"]
        assert customer.loyalty.points == 300
        assert customer.loyalty.tier == LoyaltyTier.GOLD
        assert customer.purchase_history.total_spent == Decimal("2600.00")
        assert customer.purchase_history.total_transactions == 20
        assert customer.purchase_history.average_transaction_amount == Decimal("130.00")
        # Coupon usage is not released
        assert db.coupons["CPN-1"].current_usage == 1
        assert db.transactions[transaction.id].status == TransactionStatus.VOIDED

    def test_second_void_fails(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)
        service.void_transaction(transaction.id, "wrong item", supervisor)

        with pytest.raises(InvalidTransitionError):
            service.void_transaction(transaction.id, "again", supervisor)

        assert stock(db, "P-SOAP") == 50

    def test_cashier_cannot_void(self, db, service, cashier):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)

        with pytest.raises(PermissionDeniedError):
            service.void_transaction(transaction.id, "wrong item", cashier)

        assert db.transactions[transaction.id].status == TransactionStatus.COMPLETED

    def test_void_requires_reason(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)

        with pytest.raises(ValidationError):
            service.void_transaction(transaction.id, "  ", supervisor)

    def test_void_unknown_transaction(self, service, supervisor):
        with pytest.raises(NotFoundError):
            service.void_transaction("missing", "typo", supervisor)

    def test_void_after_partial_refund_restocks_remainder(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 3)), cash("40.00"), actor=cashier)
        line_id = transaction.items[0].line_id
        service.refund_transaction(transaction.id, [{"line_id": line_id, "quantity": 1}], "damaged", actor=supervisor)

        service.void_transaction(transaction.id, "rung up twice", supervisor)

        assert stock(db, "P-SOAP") == 50

    def test_void_rolls_back_when_restock_exceeds_capacity(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-RICE", 2)), cash("60.00"), actor=cashier)
        db.products["P-RICE"] = db.products["P-RICE"].model_copy(update={"stock_quantity": 10})

        with pytest.raises(CapacityExceededError):
            service.void_transaction(transaction.id, "wrong item", supervisor)

        assert db.transactions[transaction.id].status == TransactionStatus.COMPLETED
        assert stock(db, "P-RICE") == 10


class TestRefund:

    def test_partial_refund_prorates_line_and_tax(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 3)), cash("40.00"), actor=cashier)
        line_id = transaction.items[0].line_id

        refund = service.refund_transaction(
            transaction.id, [{"line_id": line_id, "quantity": 1}], "damaged", actor=supervisor
        )

        assert refund.refund_of == transaction.id
        assert refund.subtotal == Decimal("-10.00")
        assert refund.tax_amount == Decimal("-0.80")
        assert refund.total_amount == Decimal("-10.80")
        assert refund.items[0].quantity == -1
        assert refund.payments[0].method == PaymentMethod.CASH
        assert refund.payments[0].amount == Decimal("-10.80")
        assert stock(db, "P-SOAP") == 48
        assert db.transactions[transaction.id].status == TransactionStatus.COMPLETED

    def test_full_refund_marks_original_refunded(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 3)), cash("40.00"), actor=cashier)
        line_id = transaction.items[0].line_id

        service.refund_transaction(transaction.id, [RefundLine(line_id=line_id, quantity=1)], "damaged", actor=supervisor)
        service.refund_transaction(
            transaction.id, [RefundLine(line_id=line_id, quantity=2)], "damaged", refund_method="store_credit",
            actor=supervisor,
        )

        original = db.transactions[transaction.id]
        assert original.status == TransactionStatus.REFUNDED
        assert stock(db, "P-SOAP") == 50
        with pytest.raises(InvalidTransitionError):
            service.refund_transaction(transaction.id, [RefundLine(line_id=line_id, quantity=1)], "again", actor=supervisor)

    def test_full_refund_of_coupon_sale_matches_amount_paid(self, db, service, cashier, supervisor):
        """6 soap with SAVE10: 60.00 - 6.00 + 4.80 = 58.80 paid, 58.80 back"""
        cart = make_cart(db, ("P-SOAP", 6))
        cart.apply_coupon("SAVE10")
        transaction = service.create_transaction(cart, cash("58.80"), actor=cashier)
        line_id = transaction.items[0].line_id

        refund = service.refund_transaction(
            transaction.id, [{"line_id": line_id, "quantity": 6}], "recall", actor=supervisor
        )

        assert transaction.total_amount == Decimal("58.80")
        assert refund.total_amount == Decimal("-58.80")
        assert refund.subtotal == Decimal("-60.00")
        assert refund.discount_amount == Decimal("-6.00")
        assert refund.items[0].discount_amount == Decimal("-6.00")
        assert refund.items[0].line_total == Decimal("-54.00")

    def test_partial_refunds_share_coupon_and_points(self, db, service, cashier, supervisor):
        """SAVE10 plus 100 points = 7.00 order discount spread over six units"""
        cart = make_cart(db, ("P-SOAP", 6), customer_id="C-GOLD")
        cart.apply_coupon("SAVE10")
        cart.set_loyalty_points(100)
        transaction = service.create_transaction(cart, cash("57.80"), actor=cashier)
        line_id = transaction.items[0].line_id

        first = service.refund_transaction(transaction.id, [{"line_id": line_id, "quantity": 2}], "damaged",
                                           actor=supervisor)
        second = service.refund_transaction(transaction.id, [{"line_id": line_id, "quantity": 4}], "damaged",
                                            actor=supervisor)

        assert first.discount_amount == Decimal("-2.33")
        assert first.total_amount == Decimal("-19.27")
        assert second.discount_amount == Decimal("-4.67")
        assert second.total_amount == Decimal("-38.53")
        assert first.total_amount + second.total_amount == -transaction.total_amount

    def test_order_discount_split_by_line_total(self, db, service, cashier, supervisor):
        """SAVE10 on 60.00 soap + 8.00 bread: 6.80 off, split 6.00 / 0.80"""
        cart = make_cart(db, ("P-SOAP", 6), ("P-BREAD", 2))
        cart.apply_coupon("SAVE10")
        transaction = service.create_transaction(cart, cash("66.00"), actor=cashier)
        soap, bread = transaction.items

        assert order_discount_shares(transaction) == {soap.line_id: Decimal("6.00"), bread.line_id: Decimal("0.80")}

        refund = service.refund_transaction(
            transaction.id,
            [{"line_id": soap.line_id, "quantity": 6}, {"line_id": bread.line_id, "quantity": 2}],
            "recall",
            actor=supervisor,
        )

        assert refund.total_amount == Decimal("-66.00")
        assert db.transactions[transaction.id].status == TransactionStatus.REFUNDED

    def test_refund_more_than_remaining(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 2)), cash("40.00"), actor=cashier)
        line_id = transaction.items[0].line_id
        service.refund_transaction(transaction.id, [{"line_id": line_id, "quantity": 1}], "damaged", actor=supervisor)

        with pytest.raises(ValidationError) as exc_info:
            service.refund_transaction(transaction.id, [{"line_id": line_id, "quantity": 2}], "damaged", actor=supervisor)

        assert exc_info.value.details["refundable"] == 1
        assert stock(db, "P-SOAP") == 49

    def test_refund_does_not_reverse_points(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(
            make_cart(db, ("P-RICE", 10), customer_id="C-GOLD"), cash("300.00"), actor=cashier
        )
        line_id = transaction.items[0].line_id

        service.refund_transaction(transaction.id, [{"line_id": line_id, "quantity": 5}], "spoiled", actor=supervisor)

        assert db.customers["C-GOLD"].loyalty.points == 304

    def test_unknown_line_rejected(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)

        with pytest.raises(ValidationError):
            service.refund_transaction(transaction.id, [{"line_id": "nope", "quantity": 1}], "damaged", actor=supervisor)

    def test_refund_of_refund_rejected(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 2)), cash("40.00"), actor=cashier)
        line_id = transaction.items[0].line_id
        refund = service.refund_transaction(
            transaction.id, [{"line_id": line_id, "quantity": 1}], "damaged", actor=supervisor
        )

        with pytest.raises(ValidationError):
            service.refund_transaction(refund.id, [{"line_id": line_id, "quantity": 1}], "damaged", actor=supervisor)
        with pytest.raises(ValidationError):
            service.void_transaction(refund.id, "oops", supervisor)

    def test_cashier_cannot_refund(self, db, service, cashier):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)

        with pytest.raises(PermissionDeniedError):
            service.refund_transaction(
                transaction.id, [{"line_id": transaction.items[0].line_id, "quantity": 1}], "damaged", actor=cashier
            )

    def test_voided_transaction_cannot_be_refunded(self, db, service, cashier, supervisor):
        transaction = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)
        service.void_transaction(transaction.id, "wrong item", supervisor)

        with pytest.raises(InvalidTransitionError):
            service.refund_transaction(
                transaction.id, [{"line_id": transaction.items[0].line_id, "quantity": 1}], "damaged", actor=supervisor
            )


class TestQueries:

    def test_get_and_list(self, db, service, cashier, supervisor):
        first = service.create_transaction(make_cart(db, ("P-SOAP", 1)), cash("20.00"), actor=cashier)
        service.create_transaction(make_cart(db, ("P-BREAD", 1), customer_id="C-GOLD"), cash("5.00"), actor=supervisor)

        assert service.get_transaction(first.id) == first

        by_cashier, total = service.list_transactions(cashier_id="E-100")
        assert total == 1
        assert by_cashier[0].id == first.id

        by_customer, total = service.list_transactions(customer_id="C-GOLD")
        assert total == 1

    def test_get_unknown(self, service):
        with pytest.raises(NotFoundError):
            service.get_transaction("missing")

    def test_validate_coupon(self, db, service):
        result = service.validate_coupon("save10", customer_id="C-GOLD")

        assert result["valid"] is True
        assert result["reason"] is None
        assert result["coupon"]["code"] == "SAVE10"

        missing = service.validate_coupon("NOPE")
        assert missing == {"code": "NOPE", "valid": False, "reason": "not_found", "coupon": None}
