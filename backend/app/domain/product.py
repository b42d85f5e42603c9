"""
Product Domain Model

Represents a sellable product with its embedded inventory record.
This is the single source of truth for product data structure.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PriceType(str, Enum):
    FIXED = "fixed"
    WEIGHT = "weight"


class Product(BaseModel):
    """
    Product domain model - represents a product in the store catalog

    Fields:
        id: Product ID
        name: Product name
        barcode: UPC/EAN barcode (optional)
        plu: Price Look-Up code for loose produce (optional)
        category: produce, dairy, meat, bakery, frozen, pantry, ...
        price: Unit price, or price per weight unit for weight-priced products
        price_type: fixed (per piece) or weight (per lb/kg)
        unit: piece, lb, kg, oz, gram

        # Tax
        taxable: Whether the product is taxable
        tax_rate: Tax rate as a fraction (0.0875 = 8.75%)

        # Inventory record
        stock_quantity: Units on hand (0 <= stock_quantity <= stock_capacity)
        stock_capacity: Maximum units the store can hold
        low_stock_threshold: Alert threshold
        reorder_point: Reorder threshold

        # Restrictions
        age_restricted: Requires age verification at checkout
        minimum_age: Minimum age for age-restricted products
    """

    id: str = Field(..., description="Product ID")
    name: str = Field(..., description="Product name")
    barcode: Optional[str] = Field(None, description="Barcode")
    plu: Optional[str] = Field(None, description="Price Look-Up code")
    category: Optional[str] = Field(None, description="Product category")

    # Pricing
    price: Decimal = Field(..., description="Unit or per-weight price", ge=0)
    price_type: PriceType = Field(PriceType.FIXED, description="fixed or weight")
    unit: str = Field("piece", description="Unit of sale")

    # Tax
    taxable: bool = Field(True, description="Whether product is taxable")
    tax_rate: Decimal = Field(Decimal("0.0875"), description="Tax rate fraction", ge=0)

    # Inventory
    stock_quantity: int = Field(0, description="Current stock level", ge=0)
    stock_capacity: int = Field(1000, description="Stock capacity", ge=1)
    low_stock_threshold: int = Field(10, ge=0)
    reorder_point: int = Field(5, ge=0)

    # Restrictions
    age_restricted: bool = Field(False)
    minimum_age: int = Field(18, ge=0)

    # Metadata
    is_active: bool = Field(True, description="Whether product is active")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_weight_priced(self) -> bool:
        return self.price_type == PriceType.WEIGHT

    @property
    def available_capacity(self) -> int:
        return self.stock_capacity - self.stock_quantity
