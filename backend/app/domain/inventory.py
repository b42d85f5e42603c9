"""
Inventory Domain Rules

Pure stock policy shared by every storage backend. Storage layers call
``apply_stock_operation`` inside their per-product critical section (or
express the same predicate as a conditional UPDATE), so the check and the
write are indivisible.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import CapacityExceededError, InsufficientStockError, ValidationError


class StockOperation(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class StockStatus(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    NEAR_CAPACITY = "near_capacity"
    IN_STOCK = "in_stock"


NEAR_CAPACITY_PERCENT = 90


class StockChange(BaseModel):
    """Result of one committed stock mutation"""

    product_id: str
    operation: StockOperation
    quantity: int
    old_quantity: int
    new_quantity: int
    capacity: int
    low_stock_threshold: int = 10
    reorder_point: int = 5
    reason: Optional[str] = None
    changed_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(frozen=True)

    @property
    def status(self) -> StockStatus:
        return stock_status(self.new_quantity, self.capacity, self.low_stock_threshold)

    @property
    def needs_reorder(self) -> bool:
        return self.new_quantity <= self.reorder_point


def stock_status(quantity: int, capacity: int, low_stock_threshold: int) -> StockStatus:
    if quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= low_stock_threshold:
        return StockStatus.LOW_STOCK
    if quantity * 100 >= capacity * NEAR_CAPACITY_PERCENT:
        return StockStatus.NEAR_CAPACITY
    return StockStatus.IN_STOCK


def validate_stock_quantity(operation: StockOperation, quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Stock quantity must be an integer", {"quantity": quantity})
    # "set" may legitimately zero the counter; add/subtract need a positive amount
    if operation == StockOperation.SET:
        if quantity < 0:
            raise ValidationError("Stock quantity cannot be negative", {"quantity": quantity})
    elif quantity <= 0:
        raise ValidationError("Stock quantity must be positive", {"quantity": quantity})


def apply_stock_operation(
    product_id: str,
    name: str,
    current: int,
    capacity: int,
    operation: StockOperation,
    quantity: int,
    require_available: bool = False,
) -> int:
    """
    Compute the new stock level for one operation.

    add:      fails if current + qty > capacity
    subtract: clamps at zero, unless require_available (settlement withdrawal)
              in which case current < qty is an InsufficientStockError
    set:      fails if qty > capacity

    Returns:
        The new stock quantity
    """
    if operation == StockOperation.ADD:
        if current + quantity > capacity:
            raise CapacityExceededError(product_id, current, capacity, quantity)
        return current + quantity

    if operation == StockOperation.SUBTRACT:
        if require_available and current < quantity:
            raise InsufficientStockError(product_id, name, current, quantity)
        return max(0, current - quantity)

    if operation == StockOperation.SET:
        if quantity > capacity:
            raise CapacityExceededError(product_id, current, capacity, quantity)
        return max(0, quantity)

    raise ValidationError(f"Unknown stock operation: {operation}")
