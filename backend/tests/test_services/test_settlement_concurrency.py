"""
Concurrent settlements against the in-memory store

Many registers settle at once; the per-resource locks must keep stock,
coupon caps and point balances consistent.
"""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from app.core.errors import InsufficientPointsError, InsufficientStockError, InvalidCouponError
from app.domain.cart import Cart
from app.domain.transaction import Payment, PaymentMethod


def settle_all(service, carts, actor, **kwargs):
    """Settle every cart on its own thread; returns (transactions, errors)"""
    def settle(cart):
        try:
            return service.create_transaction(
                cart, [Payment(method=PaymentMethod.CASH, amount=Decimal("100.00"))], actor=actor, **kwargs
            )
        except (InsufficientStockError, InvalidCouponError, InsufficientPointsError) as e:
            return e

    with ThreadPoolExecutor(max_workers=len(carts)) as pool:
        outcomes = list(pool.map(settle, carts))

    transactions = [o for o in outcomes if not isinstance(o, Exception)]
    errors = [o for o in outcomes if isinstance(o, Exception)]
    return transactions, errors


class TestConcurrentSettlement:

    def test_stock_never_oversold(self, db, service, cashier):
        """20 buyers, 10 bags of rice"""
        carts = []
        for _ in range(20):
            cart = Cart()
            cart.add_item(db.products["P-RICE"], 1)
            carts.append(cart)

        transactions, errors = settle_all(service, carts, cashier)

        assert len(transactions) == 10
        assert len(errors) == 10
        assert all(isinstance(e, InsufficientStockError) for e in errors)
        assert db.products["P-RICE"].stock_quantity == 0
        assert len(db.transactions) == 10

    def test_coupon_cap_holds(self, db, service, cashier):
        """LIMITED may be redeemed three times in total"""
        carts = []
        for _ in range(10):
            cart = Cart()
            cart.add_item(db.products["P-SOAP"], 1)
            cart.apply_coupon("LIMITED")
            carts.append(cart)

        transactions, errors = settle_all(service, carts, cashier)

        with_coupon = [t for t in transactions if t.coupons_used]
        assert len(with_coupon) == 3
        assert db.coupons["CPN-4"].current_usage == 3
        assert len(db.coupon_redemptions) == 3
        # Settlements that lost the race at commit are aborted entirely
        assert db.products["P-SOAP"].stock_quantity == 50 - len(transactions)
        assert len(transactions) + len(errors) == 10

    def test_points_not_double_spent(self, db, service, cashier):
        """Five registers each redeem 100 of C-GOLD's 300 points"""
        carts = []
        for _ in range(5):
            cart = Cart()
            cart.add_item(db.products["P-SOAP"], 1)
            cart.set_customer(db.customers["C-GOLD"])
            carts.append(cart)

        transactions, errors = settle_all(service, carts, cashier, loyalty_points_to_use=100)

        assert len(transactions) == 3
        assert all(isinstance(e, InsufficientPointsError) for e in errors)
        assert db.customers["C-GOLD"].loyalty.points == 0
        assert db.customers["C-GOLD"].purchase_history.total_transactions == 23
        assert db.products["P-SOAP"].stock_quantity == 47
