"""In-process storage engine.

Tables live in plain dicts of frozen entities. A transaction takes the
store lock, works on a copy of the tables and swaps the copy in at commit,
so anything raised inside the block (cancellation included) discards the
whole change set.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from ..domain import (
    Asset,
    Customer,
    ReferentialError,
    RepairStatus,
    RepairTicket,
    ValidationError,
    merge_ticket_update,
    next_timestamp,
    utcnow,
    validate_asset,
    validate_customer,
    validate_ticket,
)
from .stock_repo import check_quantity

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockItem:
    on_hand: int = 0
    reserved: int = 0

    @property
    def available(self) -> int:
        return self.on_hand - self.reserved


@dataclass
class Tables:
    customers: dict[UUID, Customer] = field(default_factory=dict)
    assets: dict[UUID, Asset] = field(default_factory=dict)
    tickets: dict[UUID, RepairTicket] = field(default_factory=dict)
    stock: dict[UUID, StockItem] = field(default_factory=dict)

    def copy(self) -> Tables:
        return Tables(
            customers=dict(self.customers),
            assets=dict(self.assets),
            tickets=dict(self.tickets),
            stock=dict(self.stock),
        )


class MemoryStore:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock
        self._tables = Tables()
        self._lock = asyncio.Lock()
        self._last_stamp: Optional[datetime] = None

    @property
    def committed(self) -> Tables:
        return self._tables

    def stamp(self) -> datetime:
        self._last_stamp = next_timestamp(self.clock(), self._last_stamp)
        return self._last_stamp

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Tables]:
        async with self._lock:
            working = self._tables.copy()
            yield working
            # commit point: a cancellation delivered here still rolls back
            await asyncio.sleep(0)
            self._tables = working


class MemoryCustomerRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def create(self, customer: Customer) -> Customer:
        validate_customer(customer)
        async with self.store.transaction() as tx:
            stored = replace(customer, id=uuid.uuid4(), created_at=self.store.stamp(), updated_at=None)
            tx.customers[stored.id] = stored
        log.info("customer_registered", customer_id=str(stored.id))
        return stored

    async def get_by_id(self, customer_id: UUID) -> Optional[Customer]:
        return self.store.committed.customers.get(customer_id)

    async def list(self, limit: int = 50) -> list[Customer]:
        rows = sorted(self.store.committed.customers.values(), key=lambda c: (c.created_at, c.id), reverse=True)
        return rows[:limit]

    async def update(self, customer: Customer) -> bool:
        validate_customer(customer)
        async with self.store.transaction() as tx:
            stored = tx.customers.get(customer.id)
            if stored is None:
                log.info("customer_update_rejected", customer_id=str(customer.id), reason="not_found")
                return False
            tx.customers[stored.id] = replace(
                customer,
                created_at=stored.created_at,
                updated_at=next_timestamp(self.store.stamp(), stored.created_at, stored.updated_at),
            )
        return True

    async def delete(self, customer_id: UUID) -> bool:
        async with self.store.transaction() as tx:
            if customer_id not in tx.customers:
                return False
            if any(a.customer_id == customer_id for a in tx.assets.values()):
                log.info("customer_delete_rejected", customer_id=str(customer_id), reason="owns_assets")
                raise ReferentialError(f"Customer {customer_id} still owns assets")
            del tx.customers[customer_id]
        return True


class MemoryAssetRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def create(self, asset: Asset) -> Asset:
        validate_asset(asset)
        async with self.store.transaction() as tx:
            if asset.customer_id not in tx.customers:
                raise ReferentialError(f"Customer {asset.customer_id} does not exist")
            stored = replace(asset, id=uuid.uuid4(), created_at=self.store.stamp(), updated_at=None, customer=None)
            tx.assets[stored.id] = stored
        log.info("asset_registered", asset_id=str(stored.id), customer_id=str(stored.customer_id))
        return stored

    async def get_by_id(self, asset_id: UUID) -> Optional[Asset]:
        tables = self.store.committed
        asset = tables.assets.get(asset_id)
        if asset is None:
            return None
        return replace(asset, customer=tables.customers[asset.customer_id])

    async def list_by_customer(self, customer_id: UUID) -> list[Asset]:
        rows = [a for a in self.store.committed.assets.values() if a.customer_id == customer_id]
        return sorted(rows, key=lambda a: (a.created_at, a.id), reverse=True)

    async def update(self, asset: Asset) -> bool:
        validate_asset(asset)
        async with self.store.transaction() as tx:
            stored = tx.assets.get(asset.id)
            if stored is None:
                log.info("asset_update_rejected", asset_id=str(asset.id), reason="not_found")
                return False
            if asset.customer_id not in tx.customers:
                raise ReferentialError(f"Customer {asset.customer_id} does not exist")
            tx.assets[stored.id] = replace(
                asset,
                created_at=stored.created_at,
                updated_at=next_timestamp(self.store.stamp(), stored.created_at, stored.updated_at),
                customer=None,
            )
        return True

    async def delete(self, asset_id: UUID) -> bool:
        async with self.store.transaction() as tx:
            if asset_id not in tx.assets:
                return False
            if any(t.asset_id == asset_id for t in tx.tickets.values()):
                log.info("asset_delete_rejected", asset_id=str(asset_id), reason="has_tickets")
                raise ReferentialError(f"Asset {asset_id} still has repair tickets")
            del tx.assets[asset_id]
        return True


class MemoryTicketingRepository:
    def __init__(self, store: MemoryStore, require_actual_cost: bool = True) -> None:
        self.store = store
        self.require_actual_cost = require_actual_cost

    async def get_by_id(self, ticket_id: UUID) -> Optional[RepairTicket]:
        tables = self.store.committed
        ticket = tables.tickets.get(ticket_id)
        if ticket is None:
            return None
        asset = tables.assets[ticket.asset_id]
        asset = replace(asset, customer=tables.customers[asset.customer_id])
        return replace(ticket, asset=asset)

    async def get_by_asset(self, asset_id: UUID) -> list[RepairTicket]:
        rows = [t for t in self.store.committed.tickets.values() if t.asset_id == asset_id]
        return sorted(rows, key=lambda t: (t.created_at, t.id), reverse=True)

    async def create(self, ticket: RepairTicket) -> RepairTicket:
        ticket = validate_ticket(ticket)
        if ticket.status is not RepairStatus.CREATED:
            raise ValidationError("status", "new tickets start in the 'created' state")

        async with self.store.transaction() as tx:
            if ticket.asset_id not in tx.assets:
                raise ReferentialError(f"Asset {ticket.asset_id} does not exist")
            stored = replace(
                ticket,
                id=uuid.uuid4(),
                created_at=self.store.stamp(),
                updated_at=None,
                completed_at=None,
                asset=None,
            )
            tx.tickets[stored.id] = stored
        log.info("ticket_created", ticket_id=str(stored.id), asset_id=str(stored.asset_id))
        return stored

    async def update(self, ticket: RepairTicket) -> bool:
        validate_ticket(ticket)
        async with self.store.transaction() as tx:
            stored = tx.tickets.get(ticket.id)
            if stored is None:
                log.info("ticket_update_rejected", ticket_id=str(ticket.id), reason="not_found")
                return False
            merged = merge_ticket_update(
                stored, ticket, now=self.store.stamp(), require_actual_cost=self.require_actual_cost
            )
            if merged is None:
                log.info(
                    "ticket_update_rejected",
                    ticket_id=str(ticket.id),
                    reason="illegal_transition",
                    current=stored.status.value,
                    requested=RepairStatus(ticket.status).value,
                )
                return False
            tx.tickets[merged.id] = merged

        if merged.status is not stored.status:
            log.info(
                "ticket_status_changed",
                ticket_id=str(merged.id),
                old=stored.status.value,
                new=merged.status.value,
            )
        return True


class MemoryInventoryRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_stock_level(self, product_id: UUID) -> int:
        item = self.store.committed.stock.get(product_id)
        return item.available if item else 0

    async def reserve_stock(self, product_id: UUID, quantity: int) -> bool:
        check_quantity(quantity)
        async with self.store.transaction() as tx:
            item = tx.stock.get(product_id)
            if item is None or item.available < quantity:
                log.info("stock_reserve_rejected", product_id=str(product_id), quantity=quantity, reason="insufficient")
                return False
            tx.stock[product_id] = replace(item, reserved=item.reserved + quantity)
        log.info("stock_reserved", product_id=str(product_id), quantity=quantity)
        return True

    async def release_stock(self, product_id: UUID, quantity: int) -> bool:
        check_quantity(quantity)
        async with self.store.transaction() as tx:
            item = tx.stock.get(product_id)
            if item is None or item.reserved < quantity:
                log.info("stock_release_rejected", product_id=str(product_id), quantity=quantity, reason="over_release")
                return False
            tx.stock[product_id] = replace(item, reserved=item.reserved - quantity)
        log.info("stock_released", product_id=str(product_id), quantity=quantity)
        return True

    async def receive_stock(self, product_id: UUID, quantity: int) -> int:
        check_quantity(quantity)
        async with self.store.transaction() as tx:
            item = tx.stock.get(product_id, StockItem())
            item = replace(item, on_hand=item.on_hand + quantity)
            tx.stock[product_id] = item
        log.info("stock_received", product_id=str(product_id), quantity=quantity, available=item.available)
        return item.available
