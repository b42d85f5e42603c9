"""
Coupon tables: definitions and the redemption log used for per-customer caps
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, DECIMAL, Text, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(64), primary_key=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Discount variant: percentage | fixed_amount | bogo | buy_x_get_y
    discount_type = Column(String(32), nullable=False)
    discount_value = Column(DECIMAL(12, 2), nullable=False, default=0)
    maximum_discount = Column(DECIMAL(12, 2))
    minimum_purchase = Column(DECIMAL(12, 2), nullable=False, default=0)

    # Eligibility
    applicable_products = Column(JSONB, nullable=False, default=list)
    applicable_categories = Column(JSONB, nullable=False, default=list)
    excluded_products = Column(JSONB, nullable=False, default=list)
    requires_loyalty_membership = Column(Boolean, nullable=False, default=False)
    minimum_loyalty_tier = Column(String(16), nullable=False, default="bronze")
    day_of_week_restrictions = Column(JSONB, nullable=False, default=list)
    time_start = Column(String(5))
    time_end = Column(String(5))

    # Usage
    usage_limit_total = Column(Integer)
    usage_limit_per_customer = Column(Integer, default=1)
    current_usage = Column(Integer, nullable=False, default=0)

    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    stackable = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    redemptions = relationship("CouponRedemption", back_populates="coupon", cascade="all, delete-orphan")


class CouponRedemption(Base):
    """One row per coupon applied to a completed transaction"""
    __tablename__ = "coupon_redemptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coupon_id = Column(String(64), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(String(64), ForeignKey("customers.id"), index=True)
    transaction_id = Column(String(64), nullable=False, index=True)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now())

    coupon = relationship("Coupon", back_populates="redemptions")
