"""
Cashier Repository - performance counters per employee
"""
from app.repositories.base import CashierStore, PostgresRepository


class CashierRepository(PostgresRepository, CashierStore):
    """Informational counters updated with every settlement"""

    def record_sale(self, cashier_id: str, amount) -> None:
        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO cashiers (id, total_transactions, total_sales, updated_at)
                VALUES (%s, 1, %s, NOW())
                ON CONFLICT (id) DO UPDATE
                SET total_transactions = cashiers.total_transactions + 1,
                    total_sales = cashiers.total_sales + EXCLUDED.total_sales,
                    updated_at = NOW()
            """, (cashier_id, amount))
