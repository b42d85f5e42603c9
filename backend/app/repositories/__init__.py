"""
Repository Layer - Data Access

This layer handles all storage access and returns domain models.
Repositories abstract away SQL details from business logic; the
in-memory store implements the same contracts.
"""
from app.repositories.base import UnitOfWork
from app.repositories.product_repository import ProductRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.transaction_repository import TransactionRepository
from app.repositories.cashier_repository import CashierRepository
from app.repositories.unit_of_work import PostgresUnitOfWork
from app.repositories.memory import InMemoryDatabase, InMemoryUnitOfWork

__all__ = [
    'UnitOfWork',
    'ProductRepository',
    'CustomerRepository',
    'CouponRepository',
    'TransactionRepository',
    'CashierRepository',
    'PostgresUnitOfWork',
    'InMemoryDatabase',
    'InMemoryUnitOfWork',
]
