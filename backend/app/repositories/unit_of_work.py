"""
PostgreSQL unit of work.

One connection, one database transaction. All repositories handed out by
the unit share the connection, so every row lock taken during a
settlement is released together at commit or rollback.
"""
import logging

from app.core.database import get_db_connection_dict_with_retry
from app.repositories.base import UnitOfWork
from app.repositories.cashier_repository import CashierRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.transaction_repository import TransactionRepository

logger = logging.getLogger(__name__)


class PostgresUnitOfWork(UnitOfWork):

    def __init__(self, connection_factory=get_db_connection_dict_with_retry):
        self._connection_factory = connection_factory
        self.conn = None
        self._committed = False

    def __enter__(self):
        self.conn = self._connection_factory()
        self._committed = False
        self.products = ProductRepository(self.conn)
        self.customers = CustomerRepository(self.conn)
        self.coupons = CouponRepository(self.conn)
        self.transactions = TransactionRepository(self.conn)
        self.cashiers = CashierRepository(self.conn)
        return self

    def commit(self) -> None:
        self.conn.commit()
        self._committed = True

    def rollback(self) -> None:
        if self.conn is not None and not self._committed:
            self.conn.rollback()

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is not None:
                logger.warning(f"Rolling back unit of work after {exc_type.__name__}: {exc}")
            self.rollback()
        finally:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
        return False
