"""
Service wiring for the routers

STORAGE_BACKEND selects the unit of work: "postgres" opens one psycopg2
connection per request-level operation, "memory" shares one process-wide
InMemoryDatabase. Tests override get_uow_factory.
"""
from functools import lru_cache
from typing import Callable

from fastapi import Depends

from app.core.clock import utcnow
from app.core.config import settings
from app.repositories.base import UnitOfWork
from app.repositories.memory import InMemoryDatabase
from app.repositories.unit_of_work import PostgresUnitOfWork
from app.services.discount_service import DiscountResolver
from app.services.inventory_service import InventoryService
from app.services.loyalty_service import LoyaltyService
from app.services.settlement_service import SettlementService


@lru_cache()
def get_memory_database() -> InMemoryDatabase:
    return InMemoryDatabase()


def get_uow_factory() -> Callable[[], UnitOfWork]:
    if settings.STORAGE_BACKEND == "memory":
        return get_memory_database().unit_of_work
    return PostgresUnitOfWork


def get_discount_resolver() -> DiscountResolver:
    return DiscountResolver(
        clock=utcnow,
        timezone=settings.STORE_TIMEZONE,
        strict=settings.STRICT_COUPONS,
    )


def get_settlement_service(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
    resolver: DiscountResolver = Depends(get_discount_resolver),
) -> SettlementService:
    return SettlementService(uow_factory, resolver=resolver, clock=utcnow)


def get_loyalty_service(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
) -> LoyaltyService:
    return LoyaltyService(uow_factory, clock=utcnow)


def get_inventory_service(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
) -> InventoryService:
    return InventoryService(uow_factory)
