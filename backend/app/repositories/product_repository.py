"""
Product Repository - Data Access Layer for Products

Handles all database queries for products and returns Product domain models.
Stock counters are only ever written by apply_stock_operation.
"""
from typing import List, Optional, Tuple

from app.core.errors import NotFoundError
from app.domain.inventory import StockChange, StockOperation, apply_stock_operation
from app.domain.product import Product
from app.repositories.base import PostgresRepository, ProductStore


PRODUCT_COLUMNS = """
    id, name, barcode, plu, category, price, price_type, unit,
    taxable, tax_rate, stock_quantity, stock_capacity,
    low_stock_threshold, reorder_point, age_restricted, minimum_age,
    is_active, created_at, updated_at
"""


class ProductRepository(PostgresRepository, ProductStore):
    """
    Repository for Product data access

    All SQL queries for products are centralized here.
    Returns Product domain models, not raw dictionaries.
    """

    @staticmethod
    def _map_row_to_product(row: dict) -> Product:
        return Product(
            id=row['id'],
            name=row['name'],
            barcode=row.get('barcode'),
            plu=row.get('plu'),
            category=row.get('category'),
            price=row['price'],
            price_type=row['price_type'],
            unit=row.get('unit') or 'piece',
            taxable=row['taxable'],
            tax_rate=row['tax_rate'],
            stock_quantity=row['stock_quantity'],
            stock_capacity=row['stock_capacity'],
            low_stock_threshold=row['low_stock_threshold'],
            reorder_point=row['reorder_point'],
            age_restricted=row.get('age_restricted', False),
            minimum_age=row.get('minimum_age', 18),
            is_active=row['is_active'],
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at')
        )

    def find_by_id(self, product_id: str) -> Optional[Product]:
        """
        Find product by ID

        Returns:
            Product or None if not found
        """
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products
                WHERE id = %s
            """, (product_id,))

            row = cursor.fetchone()
            if not row:
                return None

            return self._map_row_to_product(row)

    def find_by_code(self, code: str) -> Optional[Product]:
        """Find an active product by barcode or PLU"""
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products
                WHERE (barcode = %s OR plu = %s) AND is_active = true
                LIMIT 1
            """, (code, code))

            row = cursor.fetchone()
            return self._map_row_to_product(row) if row else None

    def find_all(
        self,
        category: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0
    ) -> Tuple[List[Product], int]:
        """
        Find active products, optionally filtered by category

        Returns:
            Tuple of (list of products, total count)
        """
        conditions = ["is_active = true"]
        params = []

        if category:
            conditions.append("category = %s")
            params.append(category)

        where_clause = " AND ".join(conditions)

        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM products
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products
                WHERE {where_clause}
                ORDER BY category, name
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            products = [self._map_row_to_product(row) for row in cursor.fetchall()]
            return products, total

    def apply_stock_operation(
        self,
        product_id: str,
        operation: StockOperation,
        quantity: int,
        require_available: bool = False,
        reason: Optional[str] = None,
    ) -> StockChange:
        """
        Lock the product row, apply the stock policy and write the result.

        The row lock is held until the surrounding transaction ends, so two
        checkouts touching the same product serialize on that row only.
        """
        with self._cursor() as cursor:
            cursor.execute("""
                SELECT id, name, stock_quantity, stock_capacity,
                       low_stock_threshold, reorder_point
                FROM products
                WHERE id = %s
                FOR UPDATE
            """, (product_id,))

            row = cursor.fetchone()
            if not row:
                raise NotFoundError("Product", product_id)

            old_quantity = row['stock_quantity']
            new_quantity = apply_stock_operation(
                product_id,
                row['name'],
                old_quantity,
                row['stock_capacity'],
                operation,
                quantity,
                require_available=require_available,
            )

            cursor.execute("""
                UPDATE products
                SET stock_quantity = %s, updated_at = NOW()
                WHERE id = %s
            """, (new_quantity, product_id))

            return StockChange(
                product_id=product_id,
                operation=operation,
                quantity=quantity,
                old_quantity=old_quantity,
                new_quantity=new_quantity,
                capacity=row['stock_capacity'],
                low_stock_threshold=row['low_stock_threshold'],
                reorder_point=row['reorder_point'],
                reason=reason,
            )
