"""
Pytest fixtures and configuration for the POS backend tests

This file provides shared fixtures that can be used across all test modules.
Engine tests run against the in-memory store with a pinned clock;
repository tests mock psycopg2.
"""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from dotenv import load_dotenv

from app.domain.actor import Actor
from app.domain.coupon import BogoDiscount, Coupon, FixedAmountDiscount, PercentageDiscount
from app.domain.customer import Customer, LoyaltyAccount, LoyaltyTier, PurchaseHistory
from app.domain.product import PriceType, Product
from app.repositories.memory import InMemoryDatabase
from app.services.discount_service import DiscountResolver
from app.services.settlement_service import SettlementService

# Load environment variables for tests
load_dotenv()

# Wednesday, 15:00 UTC
NOW = datetime(2026, 10, 14, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Pinned clock shared by the resolver and the settlement service"""
    return lambda: NOW


@pytest.fixture
def products():
    """
    Provides the test catalog

    P-SOAP:  fixed $10.00, taxable 8%
    P-APPLE: weight $2.00/lb, taxable 0%
    P-BREAD: fixed $4.00, bakery, not taxable
    P-WINE:  fixed $15.00, age restricted
    P-RICE:  fixed $30.00, stock at capacity
    """
    return [
        Product(id="P-SOAP", name="Hand Soap", barcode="0001", category="household",
                price=Decimal("10.00"), tax_rate=Decimal("0.08"), stock_quantity=50, stock_capacity=100),
        Product(id="P-APPLE", name="Gala Apples", plu="4133", category="produce",
                price=Decimal("2.00"), price_type=PriceType.WEIGHT, unit="lb",
                tax_rate=Decimal("0"), stock_quantity=100, stock_capacity=200),
        Product(id="P-BREAD", name="Sourdough", barcode="0003", category="bakery",
                price=Decimal("4.00"), taxable=False, tax_rate=Decimal("0"), stock_quantity=20, stock_capacity=50),
        Product(id="P-WINE", name="Red Wine", barcode="0004", category="beverages",
                price=Decimal("15.00"), tax_rate=Decimal("0.08"), age_restricted=True, minimum_age=21,
                stock_quantity=10, stock_capacity=40),
        Product(id="P-RICE", name="Jasmine Rice 10lb", barcode="0005", category="pantry",
                price=Decimal("30.00"), taxable=False, tax_rate=Decimal("0"), stock_quantity=10, stock_capacity=10),
    ]


@pytest.fixture
def customers(now):
    return [
        Customer(
            id="C-GOLD", first_name="Gale", last_name="Ortiz",
            loyalty=LoyaltyAccount(membership_number="LP0000000001", points=300, tier=LoyaltyTier.GOLD),
            purchase_history=PurchaseHistory(
                total_spent=Decimal("2600.00"), total_transactions=20,
                average_transaction_amount=Decimal("130.00"),
            ),
        ),
        Customer(
            id="C-NEAR", first_name="Nico", last_name="Reyes",
            loyalty=LoyaltyAccount(membership_number="LP0000000002", points=40, tier=LoyaltyTier.BRONZE),
            purchase_history=PurchaseHistory(
                total_spent=Decimal("990.00"), total_transactions=9,
                average_transaction_amount=Decimal("110.00"),
            ),
        ),
        Customer(id="C-GUEST", first_name="Sam", last_name="Lee"),
        Customer(id="C-EXEMPT", first_name="City", last_name="Shelter", tax_exempt=True,
                 tax_exempt_number="EX-42"),
    ]


@pytest.fixture
def coupons(now):
    window = {"valid_from": now - timedelta(days=7), "valid_until": now + timedelta(days=30)}
    return [
        Coupon(id="CPN-1", code="SAVE10", name="10% off $50",
               discount=PercentageDiscount(percent=Decimal("10"), maximum_discount=Decimal("20")),
               minimum_purchase=Decimal("50"), **window),
        Coupon(id="CPN-2", code="FIVEOFF", name="$5 off", stackable=True,
               discount=FixedAmountDiscount(amount=Decimal("5")), usage_limit_per_customer=None, **window),
        Coupon(id="CPN-3", code="BREADBOGO", name="Bakery BOGO", stackable=True,
               discount=BogoDiscount(), applicable_categories=["bakery"], **window),
        Coupon(id="CPN-4", code="LIMITED", name="First three", stackable=True,
               discount=FixedAmountDiscount(amount=Decimal("1")), usage_limit_total=3,
               usage_limit_per_customer=None, **window),
    ]


@pytest.fixture
def db(products, customers, coupons):
    """Fresh in-memory store per test"""
    database = InMemoryDatabase()
    for product in products:
        database.add_product(product)
    for customer in customers:
        database.add_customer(customer)
    for coupon in coupons:
        database.add_coupon(coupon)
    return database


@pytest.fixture
def resolver(clock):
    return DiscountResolver(clock=clock, timezone="UTC")


@pytest.fixture
def service(db, resolver, clock):
    return SettlementService(db.unit_of_work, resolver=resolver, clock=clock)


@pytest.fixture
def cashier():
    return Actor.for_role("E-100", "cashier", name="Casey Cashier")


@pytest.fixture
def supervisor():
    return Actor.for_role("E-200", "supervisor", name="Sky Supervisor")


@pytest.fixture
def manager():
    return Actor.for_role("E-300", "manager", name="Morgan Manager")
