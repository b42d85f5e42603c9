"""
Transaction Repository - Data Access Layer for settlement records

Line items, payments and coupon breakdowns are stored as JSONB snapshots.
Monetary columns are written once on insert; afterwards only the status
columns change.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from psycopg2.extras import Json

from app.core.errors import InvalidTransitionError, NotFoundError
from app.domain.transaction import Transaction, TransactionStatus
from app.repositories.base import PostgresRepository, TransactionStore


TRANSACTION_COLUMNS = """
    id, transaction_number, receipt_number, customer_id, cashier_id,
    subtotal, line_discount, coupon_discount, loyalty_discount, discount_amount,
    tax_amount, total_amount, amount_tendered, change_given,
    items, payments, coupons_used, coupons_skipped,
    loyalty_points_earned, loyalty_points_used,
    status, refund_of, refund_reason, void_reason, notes,
    created_at, voided_at, refunded_at
"""


class TransactionRepository(PostgresRepository, TransactionStore):
    """Repository for Transaction data access"""

    @staticmethod
    def _map_row_to_transaction(row: dict) -> Transaction:
        return Transaction(
            id=row['id'],
            transaction_number=row['transaction_number'],
            receipt_number=row['receipt_number'],
            items=tuple(row['items'] or []),
            customer_id=row.get('customer_id'),
            cashier_id=row['cashier_id'],
            subtotal=row['subtotal'],
            line_discount=row['line_discount'],
            coupon_discount=row['coupon_discount'],
            loyalty_discount=row['loyalty_discount'],
            discount_amount=row['discount_amount'],
            tax_amount=row['tax_amount'],
            total_amount=row['total_amount'],
            payments=tuple(row['payments'] or []),
            amount_tendered=row['amount_tendered'],
            change_given=row['change_given'],
            coupons_used=tuple(row.get('coupons_used') or []),
            coupons_skipped=tuple(row.get('coupons_skipped') or []),
            loyalty_points_earned=row['loyalty_points_earned'],
            loyalty_points_used=row['loyalty_points_used'],
            status=row['status'],
            refund_of=row.get('refund_of'),
            refund_reason=row.get('refund_reason'),
            void_reason=row.get('void_reason'),
            notes=row.get('notes'),
            created_at=row['created_at'],
            voided_at=row.get('voided_at'),
            refunded_at=row.get('refunded_at'),
        )

    def insert(self, transaction: Transaction) -> Transaction:
        data = transaction.model_dump(mode="json")

        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO transactions (
                    id, transaction_number, receipt_number, customer_id, cashier_id,
                    subtotal, line_discount, coupon_discount, loyalty_discount, discount_amount,
                    tax_amount, total_amount, amount_tendered, change_given,
                    items, payments, coupons_used, coupons_skipped,
                    loyalty_points_earned, loyalty_points_used,
                    status, refund_of, refund_reason, notes, created_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s,
                    %s, %s, %s, %s, %s
                )
            """, (
                transaction.id,
                transaction.transaction_number,
                transaction.receipt_number,
                transaction.customer_id,
                transaction.cashier_id,
                transaction.subtotal,
                transaction.line_discount,
                transaction.coupon_discount,
                transaction.loyalty_discount,
                transaction.discount_amount,
                transaction.tax_amount,
                transaction.total_amount,
                transaction.amount_tendered,
                transaction.change_given,
                Json(data['items']),
                Json(data['payments']),
                Json(data['coupons_used']),
                Json(data['coupons_skipped']),
                transaction.loyalty_points_earned,
                transaction.loyalty_points_used,
                transaction.status.value,
                transaction.refund_of,
                transaction.refund_reason,
                transaction.notes,
                transaction.created_at
            ))

        return transaction

    def find_by_id(self, transaction_id: str, for_update: bool = False) -> Optional[Transaction]:
        lock_clause = "FOR UPDATE" if for_update else ""

        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {TRANSACTION_COLUMNS}
                FROM transactions
                WHERE id = %s
                {lock_clause}
            """, (transaction_id,))

            row = cursor.fetchone()
            return self._map_row_to_transaction(row) if row else None

    def find_refunds(self, original_id: str) -> List[Transaction]:
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {TRANSACTION_COLUMNS}
                FROM transactions
                WHERE refund_of = %s
                ORDER BY created_at
            """, (original_id,))

            return [self._map_row_to_transaction(row) for row in cursor.fetchall()]

    def find_all(
        self,
        status: Optional[TransactionStatus] = None,
        cashier_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Transaction], int]:
        """
        Find transactions with filters

        Returns:
            Tuple of (list of transactions, total count)
        """
        conditions = []
        params = []

        if status:
            conditions.append("status = %s")
            params.append(TransactionStatus(status).value)

        if cashier_id:
            conditions.append("cashier_id = %s")
            params.append(cashier_id)

        if customer_id:
            conditions.append("customer_id = %s")
            params.append(customer_id)

        if from_date:
            conditions.append("created_at >= %s")
            params.append(from_date)

        if to_date:
            conditions.append("created_at <= %s")
            params.append(to_date)

        where_clause = " AND ".join(conditions) if conditions else "1=1"

        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM transactions
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {TRANSACTION_COLUMNS}
                FROM transactions
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            transactions = [self._map_row_to_transaction(row) for row in cursor.fetchall()]
            return transactions, total

    def update_status(self, transaction: Transaction, expected_status: TransactionStatus) -> Transaction:
        with self._cursor() as cursor:
            cursor.execute("""
                UPDATE transactions
                SET status = %s,
                    voided_at = %s,
                    void_reason = %s,
                    refunded_at = %s,
                    refund_reason = %s
                WHERE id = %s AND status = %s
            """, (
                transaction.status.value,
                transaction.voided_at,
                transaction.void_reason,
                transaction.refunded_at,
                transaction.refund_reason,
                transaction.id,
                TransactionStatus(expected_status).value
            ))

            if cursor.rowcount == 0:
                cursor.execute("SELECT status FROM transactions WHERE id = %s", (transaction.id,))
                row = cursor.fetchone()
                if not row:
                    raise NotFoundError("Transaction", transaction.id)
                raise InvalidTransitionError(transaction.id, row['status'], transaction.status.value)

        return transaction
