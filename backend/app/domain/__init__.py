"""
Domain Layer - Business Entities

This layer contains Pydantic models representing business entities.
These models enforce type safety and validation across the application.
"""
from app.domain.actor import Actor
from app.domain.product import Product, PriceType
from app.domain.customer import Customer, LoyaltyAccount, LoyaltyTier, PurchaseHistory
from app.domain.coupon import Coupon, DiscountType
from app.domain.transaction import Transaction, TransactionItem, TransactionStatus, Payment, PaymentMethod
from app.domain.inventory import StockChange, StockOperation, StockStatus

__all__ = [
    'Actor',
    'Product', 'PriceType',
    'Customer', 'LoyaltyAccount', 'LoyaltyTier', 'PurchaseHistory',
    'Coupon', 'DiscountType',
    'Transaction', 'TransactionItem', 'TransactionStatus', 'Payment', 'PaymentMethod',
    'StockChange', 'StockOperation', 'StockStatus',
]
