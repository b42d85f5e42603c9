"""
Inventory Ledger
Bounded stock mutations over a product store

Every mutation goes through the store's locked check-then-write, so the
invariant 0 <= stock_quantity <= stock_capacity holds under concurrency.
"""
import logging
from typing import Optional

from app.domain.inventory import StockChange, StockOperation, StockStatus, validate_stock_quantity
from app.repositories.base import ProductStore

logger = logging.getLogger(__name__)


class InventoryLedger:
    """add / subtract / set, plus the strict withdrawal used by settlement"""

    def __init__(self, products: ProductStore):
        self.products = products

    def add(self, product_id: str, quantity: int, reason: Optional[str] = None) -> StockChange:
        """Fails with CapacityExceededError if current + quantity > capacity"""
        return self._apply(product_id, StockOperation.ADD, quantity, reason=reason)

    def subtract(self, product_id: str, quantity: int, reason: Optional[str] = None) -> StockChange:
        """Clamps at zero; never raises on underflow"""
        return self._apply(product_id, StockOperation.SUBTRACT, quantity, reason=reason)

    def withdraw(self, product_id: str, quantity: int, reason: Optional[str] = None) -> StockChange:
        """Subtract that fails with InsufficientStockError instead of clamping"""
        return self._apply(product_id, StockOperation.SUBTRACT, quantity, require_available=True, reason=reason)

    def set(self, product_id: str, quantity: int, reason: Optional[str] = None) -> StockChange:
        """Fails with CapacityExceededError if quantity > capacity"""
        return self._apply(product_id, StockOperation.SET, quantity, reason=reason)

    def apply(self, product_id: str, operation: StockOperation, quantity: int, reason: Optional[str] = None) -> StockChange:
        return self._apply(product_id, StockOperation(operation), quantity, reason=reason)

    def _apply(
        self,
        product_id: str,
        operation: StockOperation,
        quantity: int,
        require_available: bool = False,
        reason: Optional[str] = None,
    ) -> StockChange:
        validate_stock_quantity(operation, quantity)

        change = self.products.apply_stock_operation(
            product_id,
            operation,
            quantity,
            require_available=require_available,
            reason=reason,
        )

        logger.info(
            f"Stock {operation.value} {quantity} on {product_id}: "
            f"{change.old_quantity} -> {change.new_quantity} ({reason or 'no reason'})"
        )
        if change.status in (StockStatus.OUT_OF_STOCK, StockStatus.LOW_STOCK):
            logger.warning(f"Product {product_id} is {change.status.value} ({change.new_quantity} left)")
        if change.needs_reorder:
            logger.warning(f"Product {product_id} reached reorder point {change.reorder_point}")

        return change
