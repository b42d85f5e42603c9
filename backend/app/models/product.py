"""
Product catalog table (with the embedded inventory record)
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, DECIMAL, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class Product(Base):
    """
    Sellable products. stock_quantity is only written through the
    inventory ledger (conditional UPDATE under row lock).
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("stock_quantity <= stock_capacity", name="ck_products_stock_within_capacity"),
    )

    id = Column(String(64), primary_key=True)

    # Identification
    name = Column(String(255), nullable=False)
    barcode = Column(String(64), unique=True, index=True)
    plu = Column(String(16), index=True)
    category = Column(String(64), index=True)

    # Pricing
    price = Column(DECIMAL(12, 2), nullable=False)
    price_type = Column(String(16), nullable=False, default="fixed")
    unit = Column(String(16), nullable=False, default="piece")

    # Tax
    taxable = Column(Boolean, nullable=False, default=True)
    tax_rate = Column(DECIMAL(6, 4), nullable=False, default=0.0875)

    # Inventory
    stock_quantity = Column(Integer, nullable=False, default=0)
    stock_capacity = Column(Integer, nullable=False, default=1000)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    reorder_point = Column(Integer, nullable=False, default=5)

    # Restrictions
    age_restricted = Column(Boolean, nullable=False, default=False)
    minimum_age = Column(Integer, nullable=False, default=18)

    # Metadata
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
