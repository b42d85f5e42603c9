#!/usr/bin/env python3
"""
Create the POS schema and optionally load demo catalog rows

Usage:
    export DATABASE_URL="postgresql://..."
    cd backend && python -m scripts.init_db [--seed]
"""
import argparse
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.database import Base, get_engine
from app import models

logger = logging.getLogger(__name__)


def demo_rows():
    now = datetime.now(timezone.utc)
    return [
        models.Product(id="P-MILK", name="Whole Milk 1gal", barcode="041303001011", category="dairy",
                       price=Decimal("4.29"), taxable=False, tax_rate=Decimal("0"), stock_quantity=60, stock_capacity=200),
        models.Product(id="P-BANANA", name="Bananas", plu="4011", category="produce", price=Decimal("0.59"),
                       price_type="weight", unit="lb", taxable=False, tax_rate=Decimal("0"), stock_quantity=300, stock_capacity=500),
        models.Product(id="P-BREAD", name="Sourdough Loaf", barcode="072250011433", category="bakery",
                       price=Decimal("5.49"), stock_quantity=25, stock_capacity=60),
        models.Product(id="P-WINE", name="Cabernet Sauvignon 750ml", barcode="089819000012", category="beverages",
                       price=Decimal("14.99"), age_restricted=True, minimum_age=21, stock_quantity=40, stock_capacity=120),
        models.Customer(id="C-1001", first_name="Alex", last_name="Rivera", email="alex@example.com",
                        membership_number="LP0000001001", points=300, tier="silver", join_date=now,
                        total_spent=Decimal("1250.00"), total_transactions=25, average_transaction_amount=Decimal("50.00")),
        models.Coupon(id="CPN-SAVE10", code="SAVE10", name="10% off $50", discount_type="percentage",
                      discount_value=Decimal("10"), maximum_discount=Decimal("20"), minimum_purchase=Decimal("50"),
                      valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=90),
                      usage_limit_total=1000, usage_limit_per_customer=1),
        models.Coupon(id="CPN-BREADBOGO", code="BREADBOGO", name="Bakery BOGO", discount_type="bogo",
                      discount_value=Decimal("0"), applicable_categories=["bakery"], stackable=True,
                      valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=30)),
    ]


def main():
    parser = argparse.ArgumentParser(description="Create POS tables")
    parser.add_argument("--seed", action="store_true", help="insert demo products, customer and coupons")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")

    if args.seed:
        with Session(engine) as session:
            for row in demo_rows():
                session.merge(row)
            session.commit()
        logger.info("Demo data loaded")


if __name__ == "__main__":
    main()
