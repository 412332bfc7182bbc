"""Entities of the asset-centric repair model.

Customer -> Asset -> RepairTicket form a strict tree. Children point at their
parent through a foreign-key field only; a ticket never references a
customer. Entities are frozen, every change produces a new value.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

MAX_NAME = 100
MAX_EMAIL = 256
MAX_PHONE = 50
MAX_ADDRESS = 500
MAX_DEVICE_TYPE = 100
MAX_MANUFACTURER = 100
MAX_MODEL = 200
MAX_SERIAL_NUMBER = 100
MAX_TITLE = 200
MAX_LONG_TEXT = 2000
MAX_ASSET_NOTES = 1000

MONEY_QUANT = Decimal("0.01")
MONEY_MAX = Decimal("99999999.99")  # numeric(10, 2)

TICK = timedelta(microseconds=1)


class ValidationError(Exception):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ReferentialError(Exception):
    pass


class RepairStatus(str, enum.Enum):
    CREATED = "created"
    AWAITING_QUOTE_APPROVAL = "awaiting_quote_approval"
    IN_PROGRESS = "in_progress"
    AWAITING_PARTS = "awaiting_parts"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RepairStatus.COMPLETED, RepairStatus.CANCELLED)


TRANSITIONS: dict[RepairStatus, frozenset[RepairStatus]] = {
    RepairStatus.CREATED: frozenset(
        {RepairStatus.AWAITING_QUOTE_APPROVAL, RepairStatus.IN_PROGRESS, RepairStatus.CANCELLED}
    ),
    RepairStatus.AWAITING_QUOTE_APPROVAL: frozenset({RepairStatus.IN_PROGRESS, RepairStatus.CANCELLED}),
    RepairStatus.IN_PROGRESS: frozenset(
        {RepairStatus.AWAITING_PARTS, RepairStatus.COMPLETED, RepairStatus.CANCELLED}
    ),
    RepairStatus.AWAITING_PARTS: frozenset({RepairStatus.IN_PROGRESS, RepairStatus.CANCELLED}),
    RepairStatus.COMPLETED: frozenset(),
    RepairStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Customer:
    first_name: str
    last_name: str
    email: str
    phone_number: str
    address: Optional[str] = None
    id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class Asset:
    customer_id: UUID
    device_type: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # read-only snapshot filled by lookups, never persisted
    customer: Optional[Customer] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class RepairTicket:
    asset_id: UUID
    title: str
    description: str
    estimated_cost: Decimal
    status: RepairStatus = RepairStatus.CREATED
    actual_cost: Optional[Decimal] = None
    technician_notes: Optional[str] = None
    id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    # read-only snapshot filled by get_by_id, never persisted
    asset: Optional[Asset] = field(default=None, compare=False, repr=False)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Any, field_name: str) -> Decimal:
    """Coerce ``value`` to a non-negative Decimal with two fractional digits.

    More precise values are rejected instead of rounded.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(field_name, "amount is required")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field_name, f"not a decimal amount: {value!r}") from None

    if not amount.is_finite():
        raise ValidationError(field_name, "amount must be finite")
    if amount < 0:
        raise ValidationError(field_name, "amount cannot be negative")
    if amount > MONEY_MAX:
        raise ValidationError(field_name, f"amount cannot exceed {MONEY_MAX}")
    quantized = amount.quantize(MONEY_QUANT)
    if quantized != amount:
        raise ValidationError(field_name, "amount cannot have more than 2 decimal places")
    return quantized


def _required(value: Optional[str], field_name: str, max_len: int) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(field_name, "cannot be empty")
    _bounded(value, field_name, max_len)


def _bounded(value: Optional[str], field_name: str, max_len: int) -> None:
    if value is not None and len(value) > max_len:
        raise ValidationError(field_name, f"cannot be longer than {max_len} characters")


def _reference(value: Optional[UUID], field_name: str) -> None:
    if value is None:
        raise ValidationError(field_name, "reference is required")
    if not isinstance(value, UUID):
        raise ValidationError(field_name, f"not a UUID: {value!r}")


def validate_customer(customer: Customer) -> None:
    _required(customer.first_name, "first_name", MAX_NAME)
    _required(customer.last_name, "last_name", MAX_NAME)
    _required(customer.email, "email", MAX_EMAIL)
    if "@" not in customer.email:
        raise ValidationError("email", "not an email address")
    _required(customer.phone_number, "phone_number", MAX_PHONE)
    _bounded(customer.address, "address", MAX_ADDRESS)


def validate_asset(asset: Asset) -> None:
    _reference(asset.customer_id, "customer_id")
    _required(asset.device_type, "device_type", MAX_DEVICE_TYPE)
    _bounded(asset.manufacturer, "manufacturer", MAX_MANUFACTURER)
    _bounded(asset.model, "model", MAX_MODEL)
    _bounded(asset.serial_number, "serial_number", MAX_SERIAL_NUMBER)
    _bounded(asset.notes, "notes", MAX_ASSET_NOTES)


def validate_ticket(ticket: RepairTicket) -> RepairTicket:
    """Check field invariants and return the ticket with normalized money."""
    _reference(ticket.asset_id, "asset_id")
    _required(ticket.title, "title", MAX_TITLE)
    _required(ticket.description, "description", MAX_LONG_TEXT)
    _bounded(ticket.technician_notes, "technician_notes", MAX_LONG_TEXT)
    try:
        status = RepairStatus(ticket.status)
    except ValueError:
        raise ValidationError("status", f"unknown status: {ticket.status!r}") from None
    estimated = to_money(ticket.estimated_cost, "estimated_cost")
    actual = None if ticket.actual_cost is None else to_money(ticket.actual_cost, "actual_cost")
    return replace(ticket, status=status, estimated_cost=estimated, actual_cost=actual)


def can_transition(src: RepairStatus, dst: RepairStatus) -> bool:
    return dst in TRANSITIONS[RepairStatus(src)]


def next_timestamp(now: datetime, *previous: Optional[datetime]) -> datetime:
    """``now``, pushed past every earlier stamp so updates strictly increase."""
    stamps = [p for p in previous if p is not None]
    if stamps and now <= max(stamps):
        return max(stamps) + TICK
    return now


def transition(
    ticket: RepairTicket,
    status: RepairStatus,
    now: Optional[datetime] = None,
    require_actual_cost: bool = True,
) -> Optional[RepairTicket]:
    """Move ``ticket`` to ``status``.

    Returns the changed ticket, or None when the move is not allowed. Entering
    ``completed`` stamps ``completed_at`` and, under the default policy,
    needs ``actual_cost``.
    """
    status = RepairStatus(status)
    if not can_transition(ticket.status, status):
        return None
    if status is RepairStatus.COMPLETED and require_actual_cost and ticket.actual_cost is None:
        return None

    stamp = next_timestamp(now or utcnow(), ticket.created_at, ticket.updated_at)
    completed_at = ticket.completed_at
    if status is RepairStatus.COMPLETED and completed_at is None:
        completed_at = stamp
    return replace(ticket, status=status, updated_at=stamp, completed_at=completed_at)


def merge_ticket_update(
    stored: RepairTicket,
    incoming: RepairTicket,
    now: datetime,
    require_actual_cost: bool = True,
) -> Optional[RepairTicket]:
    """Apply the mutable fields of ``incoming`` onto ``stored``.

    Returns None when the status change is not allowed, or when a completed
    ticket would lose its actual cost under the strict policy. Identity, owning
    asset and ``created_at`` come from ``stored``; ``completed_at`` never
    changes once set.
    """
    incoming = validate_ticket(incoming)
    merged = replace(
        stored,
        title=incoming.title,
        description=incoming.description,
        estimated_cost=incoming.estimated_cost,
        actual_cost=incoming.actual_cost,
        technician_notes=incoming.technician_notes,
        asset=None,
    )

    if incoming.status is not stored.status:
        moved = transition(merged, incoming.status, now=now, require_actual_cost=require_actual_cost)
        if moved is None:
            return None
        return moved

    if merged.status is RepairStatus.COMPLETED and require_actual_cost and merged.actual_cost is None:
        return None
    stamp = next_timestamp(now, stored.created_at, stored.updated_at)
    return replace(merged, updated_at=stamp)
