"""Storage adapters for the module boundaries, one set per engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..boundaries import AssetRepository, CustomerRepository, InventoryRepository, TicketingRepository
from ..db import Db
from .asset_repo import PgAssetRepository
from .customer_repo import PgCustomerRepository
from .memory import (
    MemoryAssetRepository,
    MemoryCustomerRepository,
    MemoryInventoryRepository,
    MemoryStore,
    MemoryTicketingRepository,
)
from .stock_repo import PgInventoryRepository
from .ticket_repo import PgTicketingRepository


@dataclass(frozen=True)
class Repositories:
    customers: CustomerRepository
    assets: AssetRepository
    tickets: TicketingRepository
    inventory: InventoryRepository


def postgres_repositories(db: Db, require_actual_cost: bool = True) -> Repositories:
    return Repositories(
        customers=PgCustomerRepository(db),
        assets=PgAssetRepository(db),
        tickets=PgTicketingRepository(db, require_actual_cost=require_actual_cost),
        inventory=PgInventoryRepository(db),
    )


def memory_repositories(store: Optional[MemoryStore] = None, require_actual_cost: bool = True) -> Repositories:
    store = store or MemoryStore()
    return Repositories(
        customers=MemoryCustomerRepository(store),
        assets=MemoryAssetRepository(store),
        tickets=MemoryTicketingRepository(store, require_actual_cost=require_actual_cost),
        inventory=MemoryInventoryRepository(store),
    )


__all__ = [
    "Repositories",
    "postgres_repositories",
    "memory_repositories",
    "MemoryStore",
    "PgAssetRepository",
    "PgCustomerRepository",
    "PgInventoryRepository",
    "PgTicketingRepository",
]
