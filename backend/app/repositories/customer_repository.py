"""
Customer Repository - Data Access Layer for Customers

Loyalty balances and purchase history are written only through
update_locked, which holds the customer row lock for the rest of the
surrounding transaction.
"""
from typing import Callable, Optional, Tuple

from app.core.errors import NotFoundError
from app.domain.customer import Customer, LoyaltyAccount, PurchaseHistory
from app.repositories.base import CustomerStore, PostgresRepository


CUSTOMER_COLUMNS = """
    id, first_name, last_name, email, phone,
    membership_number, points, tier, join_date,
    total_spent, total_transactions, average_transaction_amount, last_purchase_date,
    tax_exempt, tax_exempt_number, is_active
"""


class CustomerRepository(PostgresRepository, CustomerStore):
    """Repository for Customer data access"""

    @staticmethod
    def _map_row_to_customer(row: dict) -> Customer:
        return Customer(
            id=row['id'],
            first_name=row['first_name'],
            last_name=row.get('last_name') or '',
            email=row.get('email'),
            phone=row.get('phone'),
            loyalty=LoyaltyAccount(
                membership_number=row.get('membership_number'),
                points=row['points'],
                tier=row['tier'],
                join_date=row.get('join_date'),
            ),
            purchase_history=PurchaseHistory(
                total_spent=row['total_spent'],
                total_transactions=row['total_transactions'],
                average_transaction_amount=row['average_transaction_amount'],
                last_purchase_date=row.get('last_purchase_date'),
            ),
            tax_exempt=row['tax_exempt'],
            tax_exempt_number=row.get('tax_exempt_number'),
            is_active=row['is_active'],
        )

    def find_by_id(self, customer_id: str) -> Optional[Customer]:
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM customers
                WHERE id = %s
            """, (customer_id,))

            row = cursor.fetchone()
            return self._map_row_to_customer(row) if row else None

    def update_locked(
        self,
        customer_id: str,
        mutate: Callable[[Customer], Customer]
    ) -> Tuple[Customer, Customer]:
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM customers
                WHERE id = %s
                FOR UPDATE
            """, (customer_id,))

            row = cursor.fetchone()
            if not row:
                raise NotFoundError("Customer", customer_id)

            before = self._map_row_to_customer(row)
            after = mutate(before.model_copy(deep=True))

            cursor.execute("""
                UPDATE customers
                SET membership_number = %s,
                    points = %s,
                    tier = %s,
                    join_date = %s,
                    total_spent = %s,
                    total_transactions = %s,
                    average_transaction_amount = %s,
                    last_purchase_date = %s,
                    updated_at = NOW()
                WHERE id = %s
            """, (
                after.loyalty.membership_number,
                after.loyalty.points,
                after.loyalty.tier.value,
                after.loyalty.join_date,
                after.purchase_history.total_spent,
                after.purchase_history.total_transactions,
                after.purchase_history.average_transaction_amount,
                after.purchase_history.last_purchase_date,
                customer_id
            ))

            return before, after
