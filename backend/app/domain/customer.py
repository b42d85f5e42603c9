"""
Customer Domain Model

Customer with the embedded loyalty account and purchase history.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


class LoyaltyTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)


TIER_ORDER = [LoyaltyTier.BRONZE, LoyaltyTier.SILVER, LoyaltyTier.GOLD, LoyaltyTier.PLATINUM]


class LoyaltyAccount(BaseModel):
    """
    Loyalty account embedded in Customer

    Fields:
        membership_number: Present only once the customer is enrolled
        points: Point balance (never negative)
        tier: Recomputed from lifetime spend after every completed transaction
    """

    membership_number: Optional[str] = Field(None, description="Loyalty membership number")
    points: int = Field(0, description="Point balance", ge=0)
    tier: LoyaltyTier = Field(LoyaltyTier.BRONZE)
    join_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_member(self) -> bool:
        return bool(self.membership_number)


class PurchaseHistory(BaseModel):
    total_spent: Decimal = Field(Decimal("0.00"), description="Lifetime spend")
    total_transactions: int = Field(0, ge=0)
    average_transaction_amount: Decimal = Field(Decimal("0.00"))
    last_purchase_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Customer(BaseModel):
    """
    Customer domain model

    Fields:
        id: Customer ID
        first_name / last_name: Customer name
        loyalty: Loyalty account
        purchase_history: Lifetime totals
        tax_exempt: Whether the customer's purchases are tax exempt
    """

    id: str = Field(..., description="Customer ID")
    first_name: str = Field(..., description="First name")
    last_name: str = Field("", description="Last name")
    email: Optional[str] = None
    phone: Optional[str] = None
    loyalty: LoyaltyAccount = Field(default_factory=LoyaltyAccount)
    purchase_history: PurchaseHistory = Field(default_factory=PurchaseHistory)
    tax_exempt: bool = Field(False)
    tax_exempt_number: Optional[str] = None
    is_active: bool = Field(True)

    model_config = ConfigDict(from_attributes=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
