"""
Settlement records and cashier counters
"""
from sqlalchemy import Column, String, DateTime, Integer, DECIMAL, Text, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.core.database import Base


class Transaction(Base):
    """
    Immutable sale (or refund) record. Line items, payments and coupon
    breakdown are JSONB snapshots; only the status columns change later.
    """
    __tablename__ = "transactions"

    id = Column(String(64), primary_key=True)
    transaction_number = Column(String(64), nullable=False, unique=True, index=True)
    receipt_number = Column(String(64), nullable=False, unique=True)

    customer_id = Column(String(64), ForeignKey("customers.id"), index=True)
    cashier_id = Column(String(64), nullable=False, index=True)

    # Amounts
    subtotal = Column(DECIMAL(12, 2), nullable=False)
    line_discount = Column(DECIMAL(12, 2), nullable=False, default=0)
    coupon_discount = Column(DECIMAL(12, 2), nullable=False, default=0)
    loyalty_discount = Column(DECIMAL(12, 2), nullable=False, default=0)
    discount_amount = Column(DECIMAL(12, 2), nullable=False, default=0)
    tax_amount = Column(DECIMAL(12, 2), nullable=False)
    total_amount = Column(DECIMAL(12, 2), nullable=False)
    amount_tendered = Column(DECIMAL(12, 2), nullable=False, default=0)
    change_given = Column(DECIMAL(12, 2), nullable=False, default=0)

    # Snapshots
    items = Column(JSONB, nullable=False)
    payments = Column(JSONB, nullable=False)
    coupons_used = Column(JSONB, nullable=False, default=list)
    coupons_skipped = Column(JSONB, nullable=False, default=list)

    loyalty_points_earned = Column(Integer, nullable=False, default=0)
    loyalty_points_used = Column(Integer, nullable=False, default=0)

    # Lifecycle: pending | completed | voided | refunded
    status = Column(String(16), nullable=False, default="completed", index=True)
    refund_of = Column(String(64), ForeignKey("transactions.id"), index=True)
    refund_reason = Column(Text)
    void_reason = Column(Text)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    voided_at = Column(DateTime(timezone=True))
    refunded_at = Column(DateTime(timezone=True))


class Cashier(Base):
    """Informational performance counters, updated inside each settlement"""
    __tablename__ = "cashiers"

    id = Column(String(64), primary_key=True)
    total_transactions = Column(Integer, nullable=False, default=0)
    total_sales = Column(DECIMAL(14, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
