"""
Coupon Repository - Data Access Layer for Coupons
"""
from typing import Optional

from app.core.errors import CouponRejection, InvalidCouponError, NotFoundError
from app.domain.coupon import Coupon, discount_from_columns
from app.repositories.base import CouponStore, PostgresRepository


COUPON_COLUMNS = """
    id, code, name, description, discount_type, discount_value, maximum_discount,
    minimum_purchase, applicable_products, applicable_categories, excluded_products,
    usage_limit_total, usage_limit_per_customer, current_usage,
    valid_from, valid_until, stackable, requires_loyalty_membership,
    minimum_loyalty_tier, day_of_week_restrictions, time_start, time_end, is_active
"""


def check_usage_caps(coupon: Coupon, customer_redemptions: Optional[int]) -> None:
    """Raise if redeeming once more would exceed a usage cap"""
    if coupon.usage_limit_total is not None and coupon.current_usage >= coupon.usage_limit_total:
        raise InvalidCouponError(coupon.code, CouponRejection.USAGE_EXCEEDED)
    if (
        customer_redemptions is not None
        and coupon.usage_limit_per_customer is not None
        and customer_redemptions >= coupon.usage_limit_per_customer
    ):
        raise InvalidCouponError(coupon.code, CouponRejection.CUSTOMER_USAGE_EXCEEDED)


class CouponRepository(PostgresRepository, CouponStore):
    """Repository for Coupon data access"""

    @staticmethod
    def _map_row_to_coupon(row: dict) -> Coupon:
        return Coupon(
            id=row['id'],
            code=row['code'],
            name=row['name'],
            description=row.get('description'),
            discount=discount_from_columns(
                row['discount_type'],
                row['discount_value'],
                row.get('maximum_discount')
            ),
            minimum_purchase=row['minimum_purchase'],
            applicable_products=row.get('applicable_products') or [],
            applicable_categories=row.get('applicable_categories') or [],
            excluded_products=row.get('excluded_products') or [],
            usage_limit_total=row.get('usage_limit_total'),
            usage_limit_per_customer=row.get('usage_limit_per_customer'),
            current_usage=row['current_usage'],
            valid_from=row['valid_from'],
            valid_until=row['valid_until'],
            stackable=row['stackable'],
            requires_loyalty_membership=row['requires_loyalty_membership'],
            minimum_loyalty_tier=row['minimum_loyalty_tier'],
            day_of_week_restrictions=row.get('day_of_week_restrictions') or [],
            time_start=row.get('time_start'),
            time_end=row.get('time_end'),
            is_active=row['is_active'],
        )

    def find_by_code(self, code: str) -> Optional[Coupon]:
        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {COUPON_COLUMNS}
                FROM coupons
                WHERE code = %s
            """, (code.strip().upper(),))

            row = cursor.fetchone()
            return self._map_row_to_coupon(row) if row else None

    def count_customer_redemptions(self, coupon_id: str, customer_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute("""
                SELECT COUNT(*) as total
                FROM coupon_redemptions
                WHERE coupon_id = %s AND customer_id = %s
            """, (coupon_id, customer_id))
            return cursor.fetchone()['total']

    def redeem(self, coupon_id: str, customer_id: Optional[str], transaction_id: str) -> Coupon:
        with self._cursor() as cursor:
            # Lock the coupon row: the cap checks below are serialized per coupon
            cursor.execute(f"""
                SELECT {COUPON_COLUMNS}
                FROM coupons
                WHERE id = %s
                FOR UPDATE
            """, (coupon_id,))

            row = cursor.fetchone()
            if not row:
                raise NotFoundError("Coupon", coupon_id)
            coupon = self._map_row_to_coupon(row)

            redemptions = None
            if customer_id is not None:
                cursor.execute("""
                    SELECT COUNT(*) as total
                    FROM coupon_redemptions
                    WHERE coupon_id = %s AND customer_id = %s
                """, (coupon_id, customer_id))
                redemptions = cursor.fetchone()['total']

            check_usage_caps(coupon, redemptions)

            cursor.execute("""
                UPDATE coupons
                SET current_usage = current_usage + 1, updated_at = NOW()
                WHERE id = %s
            """, (coupon_id,))

            cursor.execute("""
                INSERT INTO coupon_redemptions (coupon_id, customer_id, transaction_id, redeemed_at)
                VALUES (%s, %s, %s, NOW())
            """, (coupon_id, customer_id, transaction_id))

            return coupon.model_copy(update={"current_usage": coupon.current_usage + 1})
