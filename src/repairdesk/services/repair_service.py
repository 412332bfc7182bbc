from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional
from uuid import UUID

import structlog

from ..boundaries import AssetRepository, CustomerRepository, TicketingRepository
from ..domain import (
    Asset,
    Customer,
    RepairStatus,
    RepairTicket,
    ValidationError,
    to_money,
    transition,
)

log = structlog.get_logger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class RepairService:
    """Front desk workflows on top of the ticketing and registry boundaries."""

    def __init__(
        self,
        *,
        customers: CustomerRepository,
        assets: AssetRepository,
        tickets: TicketingRepository,
        require_actual_cost: bool = True,
    ) -> None:
        self.customers = customers
        self.assets = assets
        self.tickets = tickets
        self.require_actual_cost = require_actual_cost

    async def register_customer(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone_number: str,
        address: Optional[str] = None,
    ) -> Customer:
        customer = Customer(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip(),
            phone_number=phone_number.strip(),
            address=_clean(address),
        )
        return await self.customers.create(customer)

    async def update_contact(self, customer_id: UUID, **changes: Any) -> Optional[Customer]:
        """Change contact fields of a customer. None when it does not exist."""
        current = await self.customers.get_by_id(customer_id)
        if current is None:
            return None
        allowed = {"first_name", "last_name", "email", "phone_number", "address"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(sorted(unknown)[0], "not a contact field")
        cleaned = {
            k: _clean(v) if k == "address" else (v.strip() if isinstance(v, str) else v)
            for k, v in changes.items()
        }
        if not await self.customers.update(replace(current, **cleaned)):
            return None
        return await self.customers.get_by_id(customer_id)

    async def register_asset(
        self,
        *,
        customer_id: UUID,
        device_type: str,
        manufacturer: Optional[str] = None,
        model: Optional[str] = None,
        serial_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Asset:
        asset = Asset(
            customer_id=customer_id,
            device_type=device_type.strip(),
            manufacturer=_clean(manufacturer),
            model=_clean(model),
            serial_number=_clean(serial_number),
            notes=_clean(notes),
        )
        return await self.assets.create(asset)

    async def transfer_asset(self, asset_id: UUID, new_customer_id: UUID) -> Optional[Asset]:
        """Hand a device to another customer. Its repair history stays with it."""
        asset = await self.assets.get_by_id(asset_id)
        if asset is None:
            return None
        if not await self.assets.update(replace(asset, customer_id=new_customer_id, customer=None)):
            return None
        log.info(
            "asset_transferred",
            asset_id=str(asset_id),
            old_customer_id=str(asset.customer_id),
            new_customer_id=str(new_customer_id),
        )
        return await self.assets.get_by_id(asset_id)

    async def open_ticket(
        self,
        *,
        asset_id: UUID,
        title: str,
        description: str,
        estimated_cost: Any,
    ) -> RepairTicket:
        ticket = RepairTicket(
            asset_id=asset_id,
            title=title.strip(),
            description=description.strip(),
            estimated_cost=to_money(estimated_cost, "estimated_cost"),
        )
        return await self.tickets.create(ticket)

    async def change_status(self, ticket_id: UUID, status: RepairStatus | str) -> bool:
        """Move a ticket along its lifecycle. False for unknown tickets and illegal moves."""
        try:
            status = RepairStatus(status)
        except ValueError:
            raise ValidationError("status", f"unknown status: {status!r}") from None

        ticket = await self.tickets.get_by_id(ticket_id)
        if ticket is None:
            return False
        moved = transition(ticket, status, require_actual_cost=self.require_actual_cost)
        if moved is None:
            log.info(
                "status_change_rejected",
                ticket_id=str(ticket_id),
                current=ticket.status.value,
                requested=status.value,
            )
            return False
        return await self.tickets.update(moved)

    async def record_costs(
        self,
        ticket_id: UUID,
        *,
        estimated_cost: Any = None,
        actual_cost: Any = None,
    ) -> Optional[RepairTicket]:
        ticket = await self.tickets.get_by_id(ticket_id)
        if ticket is None:
            return None
        if estimated_cost is not None:
            ticket = replace(ticket, estimated_cost=to_money(estimated_cost, "estimated_cost"))
        if actual_cost is not None:
            ticket = replace(ticket, actual_cost=to_money(actual_cost, "actual_cost"))
        if not await self.tickets.update(ticket):
            return None
        return await self.tickets.get_by_id(ticket_id)

    async def add_technician_notes(self, ticket_id: UUID, notes: str) -> Optional[RepairTicket]:
        """Append a line to the technician notes."""
        notes = notes.strip()
        if not notes:
            raise ValidationError("technician_notes", "cannot be empty")
        ticket = await self.tickets.get_by_id(ticket_id)
        if ticket is None:
            return None
        combined = f"{ticket.technician_notes}\n{notes}" if ticket.technician_notes else notes
        if not await self.tickets.update(replace(ticket, technician_notes=combined)):
            return None
        return await self.tickets.get_by_id(ticket_id)

    async def service_history(self, asset_id: UUID) -> list[RepairTicket]:
        return await self.tickets.get_by_asset(asset_id)

    async def ticket_details(self, ticket_id: UUID) -> Optional[RepairTicket]:
        return await self.tickets.get_by_id(ticket_id)
