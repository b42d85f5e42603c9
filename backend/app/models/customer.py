"""
Customer table with flattened loyalty account and purchase history
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, DECIMAL, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_customers_points_non_negative"),
    )

    id = Column(String(64), primary_key=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    email = Column(String(255), index=True)
    phone = Column(String(50))

    # Loyalty
    membership_number = Column(String(32), unique=True)
    points = Column(Integer, nullable=False, default=0)
    tier = Column(String(16), nullable=False, default="bronze")
    join_date = Column(DateTime(timezone=True))

    # Purchase history
    total_spent = Column(DECIMAL(12, 2), nullable=False, default=0)
    total_transactions = Column(Integer, nullable=False, default=0)
    average_transaction_amount = Column(DECIMAL(12, 2), nullable=False, default=0)
    last_purchase_date = Column(DateTime(timezone=True))

    # Tax
    tax_exempt = Column(Boolean, nullable=False, default=False)
    tax_exempt_number = Column(String(64))

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
