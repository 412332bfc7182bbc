"""
Module boundaries.

Other modules reach ticketing and inventory data only through these
contracts, never through the storage engine directly. Every storage engine
ships one adapter per contract (see ``repairdesk.repositories``).

All operations are coroutines. Cancelling the awaiting task before the
storage transaction commits leaves no persisted change.
"""

from __future__ import annotations

from typing import Optional, Protocol
from uuid import UUID

from .domain import Asset, Customer, RepairTicket


class CustomerRepository(Protocol):
    async def create(self, customer: Customer) -> Customer:
        """Register a customer; id and ``created_at`` are assigned by the store."""
        ...

    async def get_by_id(self, customer_id: UUID) -> Optional[Customer]:
        ...

    async def list(self, limit: int = 50) -> list[Customer]:
        ...

    async def update(self, customer: Customer) -> bool:
        """Replace contact details. False when the customer does not exist."""
        ...

    async def delete(self, customer_id: UUID) -> bool:
        """
        Delete a customer without assets.

        Returns False when absent. Raises ReferentialError while the
        customer still owns assets.
        """
        ...


class AssetRepository(Protocol):
    async def create(self, asset: Asset) -> Asset:
        """Register a device. Raises ReferentialError for an unknown customer."""
        ...

    async def get_by_id(self, asset_id: UUID) -> Optional[Asset]:
        """Fetch an asset together with a snapshot of its owner."""
        ...

    async def list_by_customer(self, customer_id: UUID) -> list[Asset]:
        ...

    async def update(self, asset: Asset) -> bool:
        """
        Replace asset metadata, including the owner.

        False when the asset does not exist; ReferentialError when the new
        owner does not.
        """
        ...

    async def delete(self, asset_id: UUID) -> bool:
        """Like CustomerRepository.delete, restricted by existing tickets."""
        ...


class TicketingRepository(Protocol):
    async def get_by_id(self, ticket_id: UUID) -> Optional[RepairTicket]:
        """Fetch a ticket with its asset and that asset's customer."""
        ...

    async def get_by_asset(self, asset_id: UUID) -> list[RepairTicket]:
        """Service history of one asset, newest first."""
        ...

    async def create(self, ticket: RepairTicket) -> RepairTicket:
        """
        Persist a new ticket in the ``created`` state.

        Raises ValidationError for bad fields and ReferentialError when the
        asset does not exist.
        """
        ...

    async def update(self, ticket: RepairTicket) -> bool:
        """
        Replace the mutable fields of an existing ticket.

        False when the ticket does not exist or the status change breaks
        the lifecycle; nothing is written in either case.
        """
        ...


class InventoryRepository(Protocol):
    async def get_stock_level(self, product_id: UUID) -> int:
        """Available (unreserved) quantity; 0 for unknown products."""
        ...

    async def reserve_stock(self, product_id: UUID, quantity: int) -> bool:
        """All-or-nothing reservation. False when stock is insufficient."""
        ...

    async def release_stock(self, product_id: UUID, quantity: int) -> bool:
        """Give reserved quantity back. False when more than reserved."""
        ...

    async def receive_stock(self, product_id: UUID, quantity: int) -> int:
        """Add on-hand stock and return the new available level."""
        ...
