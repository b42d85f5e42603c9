"""
Repository contracts.

The settlement engine talks to storage only through these interfaces.
Every implementation must make each per-resource read-modify-write
indivisible (row lock or per-resource mutex) and must hold those locks
until the unit of work commits or rolls back.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from app.core.database import get_db_connection_dict
from app.domain.coupon import Coupon
from app.domain.customer import Customer
from app.domain.inventory import StockChange, StockOperation
from app.domain.product import Product
from app.domain.transaction import Transaction, TransactionStatus


class ProductStore(ABC):

    @abstractmethod
    def find_by_id(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def find_by_code(self, code: str) -> Optional[Product]:
        """Find by barcode or PLU"""

    @abstractmethod
    def find_all(self, category: Optional[str] = None, limit: int = 1000, offset: int = 0) -> Tuple[List[Product], int]:
        ...

    @abstractmethod
    def apply_stock_operation(
        self,
        product_id: str,
        operation: StockOperation,
        quantity: int,
        require_available: bool = False,
        reason: Optional[str] = None,
    ) -> StockChange:
        """Locked check-then-write of one stock counter"""


class CustomerStore(ABC):

    @abstractmethod
    def find_by_id(self, customer_id: str) -> Optional[Customer]:
        ...

    @abstractmethod
    def update_locked(self, customer_id: str, mutate: Callable[[Customer], Customer]) -> Tuple[Customer, Customer]:
        """
        Lock the customer, apply ``mutate`` to the locked state and persist it.

        Returns:
            Tuple of (state before, state after)
        """


class CouponStore(ABC):

    @abstractmethod
    def find_by_code(self, code: str) -> Optional[Coupon]:
        ...

    @abstractmethod
    def count_customer_redemptions(self, coupon_id: str, customer_id: str) -> int:
        ...

    @abstractmethod
    def redeem(self, coupon_id: str, customer_id: Optional[str], transaction_id: str) -> Coupon:
        """
        Increment the usage counter under lock, enforcing the global and
        per-customer caps. Raises InvalidCouponError when a cap is reached.
        """


class TransactionStore(ABC):

    @abstractmethod
    def insert(self, transaction: Transaction) -> Transaction:
        ...

    @abstractmethod
    def find_by_id(self, transaction_id: str, for_update: bool = False) -> Optional[Transaction]:
        ...

    @abstractmethod
    def find_refunds(self, original_id: str) -> List[Transaction]:
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    def update_status(self, transaction: Transaction, expected_status: TransactionStatus) -> Transaction:
        """Persist a status transition only if the stored status still matches"""


class CashierStore(ABC):

    @abstractmethod
    def record_sale(self, cashier_id: str, amount) -> None:
        ...


class UnitOfWork(ABC):
    """
    One storage transaction. Repositories obtained from a unit of work
    share it; nothing is visible to other units until commit().
    Leaving the context without commit() rolls everything back.
    """

    products: ProductStore
    customers: CustomerStore
    coupons: CouponStore
    transactions: TransactionStore
    cashiers: CashierStore

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.rollback()
        return False


class PostgresRepository:
    """
    Base for psycopg2 repositories.

    When constructed with a connection the repository takes part in the
    caller's transaction and never commits or closes it. Without one, each
    call opens its own connection and commits on success.
    """

    def __init__(self, conn=None):
        self.conn = conn

    @contextmanager
    def _cursor(self):
        should_close = self.conn is None
        conn = self.conn if self.conn is not None else get_db_connection_dict()
        cursor = conn.cursor()

        try:
            yield cursor
            if should_close:
                conn.commit()
        except Exception:
            if should_close:
                conn.rollback()
            raise
        finally:
            cursor.close()
            if should_close:
                conn.close()
