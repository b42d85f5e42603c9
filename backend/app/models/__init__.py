"""
Database table definitions
"""
from .product import Product
from .customer import Customer
from .coupon import Coupon, CouponRedemption
from .transaction import Transaction, Cashier

__all__ = [
    "Product",
    "Customer",
    "Coupon",
    "CouponRedemption",
    "Transaction",
    "Cashier",
]
