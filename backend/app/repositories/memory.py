"""
In-memory storage backend.

Mirrors the PostgreSQL contract for development, demos and tests: one
re-entrant lock per resource (product, coupon, customer, transaction,
cashier), taken by a unit of work on first write and held until it
commits or rolls back, the way row locks behave. Writes are journaled so
rollback restores every touched record.
"""
import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from app.core.errors import InvalidTransitionError, NotFoundError
from app.domain.coupon import Coupon
from app.domain.customer import Customer
from app.domain.inventory import StockChange, StockOperation, apply_stock_operation
from app.domain.product import Product
from app.domain.transaction import Transaction, TransactionStatus
from app.repositories.base import (
    CashierStore,
    CouponStore,
    CustomerStore,
    ProductStore,
    TransactionStore,
    UnitOfWork,
)
from app.repositories.coupon_repository import check_usage_caps


class InMemoryDatabase:
    """Process-local tables plus the per-resource lock registry"""

    def __init__(self):
        self.products: Dict[str, Product] = {}
        self.customers: Dict[str, Customer] = {}
        self.coupons: Dict[str, Coupon] = {}
        self.coupon_redemptions: List[dict] = []
        self.transactions: Dict[str, Transaction] = {}
        self.cashiers: Dict[str, dict] = {}
        self._locks: Dict[Tuple[str, str], threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, kind: str, key: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get((kind, key))
            if lock is None:
                lock = threading.RLock()
                self._locks[(kind, key)] = lock
            return lock

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    def add_coupon(self, coupon: Coupon) -> Coupon:
        self.coupons[coupon.id] = coupon
        return coupon

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)


class InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, db: InMemoryDatabase):
        self.db = db
        self._held: List[threading.RLock] = []
        self._held_keys = set()
        self._journal: List[Callable[[], None]] = []
        self.products = InMemoryProductRepository(db, self)
        self.customers = InMemoryCustomerRepository(db, self)
        self.coupons = InMemoryCouponRepository(db, self)
        self.transactions = InMemoryTransactionRepository(db, self)
        self.cashiers = InMemoryCashierRepository(db, self)

    def acquire(self, kind: str, key: str) -> None:
        if (kind, key) in self._held_keys:
            return
        lock = self.db.lock_for(kind, key)
        lock.acquire()
        self._held.append(lock)
        self._held_keys.add((kind, key))

    def journal(self, table: dict, key: str) -> None:
        """Remember the current value of table[key] so rollback can restore it"""
        if key in table:
            previous = table[key]
            self.on_rollback(lambda: table.__setitem__(key, previous))
        else:
            self.on_rollback(lambda: table.pop(key, None))

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._journal.append(undo)

    def _release(self) -> None:
        while self._held:
            self._held.pop().release()
        self._held_keys.clear()

    def commit(self) -> None:
        self._journal.clear()
        self._release()

    def rollback(self) -> None:
        try:
            while self._journal:
                self._journal.pop()()
        finally:
            self._release()


class _InMemoryRepository:

    def __init__(self, db: InMemoryDatabase, uow: InMemoryUnitOfWork):
        self.db = db
        self.uow = uow


class InMemoryProductRepository(_InMemoryRepository, ProductStore):

    def find_by_id(self, product_id: str) -> Optional[Product]:
        product = self.db.products.get(product_id)
        return product.model_copy(deep=True) if product else None

    def find_by_code(self, code: str) -> Optional[Product]:
        for product in self.db.products.values():
            if product.is_active and code in (product.barcode, product.plu):
                return product.model_copy(deep=True)
        return None

    def find_all(self, category: Optional[str] = None, limit: int = 1000, offset: int = 0) -> Tuple[List[Product], int]:
        products = [
            p for p in self.db.products.values()
            if p.is_active and (category is None or p.category == category)
        ]
        products.sort(key=lambda p: (p.category or "", p.name))
        page = [p.model_copy(deep=True) for p in products[offset:offset + limit]]
        return page, len(products)

    def apply_stock_operation(
        self,
        product_id: str,
        operation: StockOperation,
        quantity: int,
        require_available: bool = False,
        reason: Optional[str] = None,
    ) -> StockChange:
        self.uow.acquire("product", product_id)
        product = self.db.products.get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)

        new_quantity = apply_stock_operation(
            product_id,
            product.name,
            product.stock_quantity,
            product.stock_capacity,
            operation,
            quantity,
            require_available=require_available,
        )

        self.uow.journal(self.db.products, product_id)
        self.db.products[product_id] = product.model_copy(
            update={"stock_quantity": new_quantity, "updated_at": datetime.utcnow()}
        )

        return StockChange(
            product_id=product_id,
            operation=operation,
            quantity=quantity,
            old_quantity=product.stock_quantity,
            new_quantity=new_quantity,
            capacity=product.stock_capacity,
            low_stock_threshold=product.low_stock_threshold,
            reorder_point=product.reorder_point,
            reason=reason,
        )


class InMemoryCustomerRepository(_InMemoryRepository, CustomerStore):

    def find_by_id(self, customer_id: str) -> Optional[Customer]:
        customer = self.db.customers.get(customer_id)
        return customer.model_copy(deep=True) if customer else None

    def update_locked(self, customer_id: str, mutate: Callable[[Customer], Customer]) -> Tuple[Customer, Customer]:
        self.uow.acquire("customer", customer_id)
        current = self.db.customers.get(customer_id)
        if current is None:
            raise NotFoundError("Customer", customer_id)

        before = current.model_copy(deep=True)
        after = mutate(current.model_copy(deep=True))

        self.uow.journal(self.db.customers, customer_id)
        self.db.customers[customer_id] = after
        return before, after.model_copy(deep=True)


class InMemoryCouponRepository(_InMemoryRepository, CouponStore):

    def find_by_code(self, code: str) -> Optional[Coupon]:
        code = code.strip().upper()
        for coupon in self.db.coupons.values():
            if coupon.code == code:
                return coupon.model_copy(deep=True)
        return None

    def count_customer_redemptions(self, coupon_id: str, customer_id: str) -> int:
        return sum(
            1 for r in list(self.db.coupon_redemptions)
            if r["coupon_id"] == coupon_id and r["customer_id"] == customer_id
        )

    def redeem(self, coupon_id: str, customer_id: Optional[str], transaction_id: str) -> Coupon:
        self.uow.acquire("coupon", coupon_id)
        coupon = self.db.coupons.get(coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon", coupon_id)

        redemptions = None
        if customer_id is not None:
            redemptions = self.count_customer_redemptions(coupon_id, customer_id)
        check_usage_caps(coupon, redemptions)

        self.uow.journal(self.db.coupons, coupon_id)
        updated = coupon.model_copy(update={"current_usage": coupon.current_usage + 1})
        self.db.coupons[coupon_id] = updated

        entry = {
            "coupon_id": coupon_id,
            "customer_id": customer_id,
            "transaction_id": transaction_id,
            "redeemed_at": datetime.utcnow(),
        }
        self.db.coupon_redemptions.append(entry)
        self.uow.on_rollback(lambda: self.db.coupon_redemptions.remove(entry))
        return updated


class InMemoryTransactionRepository(_InMemoryRepository, TransactionStore):

    def insert(self, transaction: Transaction) -> Transaction:
        self.uow.acquire("transaction", transaction.id)
        self.uow.journal(self.db.transactions, transaction.id)
        self.db.transactions[transaction.id] = transaction
        return transaction

    def find_by_id(self, transaction_id: str, for_update: bool = False) -> Optional[Transaction]:
        if for_update:
            self.uow.acquire("transaction", transaction_id)
        return self.db.transactions.get(transaction_id)

    def find_refunds(self, original_id: str) -> List[Transaction]:
        refunds = [t for t in list(self.db.transactions.values()) if t.refund_of == original_id]
        return sorted(refunds, key=lambda t: t.created_at)

    def find_all(
        self,
        status: Optional[TransactionStatus] = None,
        cashier_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Transaction], int]:
        matches = [
            t for t in list(self.db.transactions.values())
            if (status is None or t.status == TransactionStatus(status))
            and (cashier_id is None or t.cashier_id == cashier_id)
            and (customer_id is None or t.customer_id == customer_id)
            and (from_date is None or t.created_at >= from_date)
            and (to_date is None or t.created_at <= to_date)
        ]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        return matches[offset:offset + limit], len(matches)

    def update_status(self, transaction: Transaction, expected_status: TransactionStatus) -> Transaction:
        self.uow.acquire("transaction", transaction.id)
        stored = self.db.transactions.get(transaction.id)
        if stored is None:
            raise NotFoundError("Transaction", transaction.id)
        if stored.status != TransactionStatus(expected_status):
            raise InvalidTransitionError(transaction.id, stored.status.value, transaction.status.value)

        self.uow.journal(self.db.transactions, transaction.id)
        self.db.transactions[transaction.id] = transaction
        return transaction


class InMemoryCashierRepository(_InMemoryRepository, CashierStore):

    def record_sale(self, cashier_id: str, amount) -> None:
        self.uow.acquire("cashier", cashier_id)
        self.uow.journal(self.db.cashiers, cashier_id)
        current = self.db.cashiers.get(cashier_id, {"total_transactions": 0, "total_sales": Decimal("0.00")})
        self.db.cashiers[cashier_id] = {
            "total_transactions": current["total_transactions"] + 1,
            "total_sales": current["total_sales"] + Decimal(amount),
        }
