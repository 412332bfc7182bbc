from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from psycopg import AsyncConnection, errors

from ..db import Db
from ..domain import (
    ReferentialError,
    RepairStatus,
    RepairTicket,
    ValidationError,
    merge_ticket_update,
    validate_ticket,
)
from .asset_repo import OWNER_COLUMNS, asset_exists, row_to_asset

log = structlog.get_logger(__name__)

TICKET_COLUMNS = (
    "t.id, t.asset_id, t.title, t.description, t.status, t.created_at, t.updated_at, t.completed_at, "
    "t.estimated_cost, t.actual_cost, t.technician_notes"
)
PREFIXED_ASSET_COLUMNS = (
    "a.id AS a_id, a.customer_id AS a_customer_id, a.device_type AS a_device_type, "
    "a.manufacturer AS a_manufacturer, a.model AS a_model, a.serial_number AS a_serial_number, "
    "a.notes AS a_notes, a.created_at AS a_created_at, a.updated_at AS a_updated_at"
)


def row_to_ticket(row: dict, with_context: bool = False) -> RepairTicket:
    asset = row_to_asset(row, prefix="a_", with_owner=True) if with_context else None
    return RepairTicket(
        id=row["id"],
        asset_id=row["asset_id"],
        title=row["title"],
        description=row["description"],
        status=RepairStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
        estimated_cost=row["estimated_cost"],
        actual_cost=row["actual_cost"],
        technician_notes=row["technician_notes"],
        asset=asset,
    )


async def _clock(conn: AsyncConnection):
    cur = await conn.execute("SELECT clock_timestamp() AS now;")
    return (await cur.fetchone())["now"]


class PgTicketingRepository:
    def __init__(self, db: Db, require_actual_cost: bool = True) -> None:
        self.db = db
        self.require_actual_cost = require_actual_cost

    async def get_by_id(self, ticket_id: UUID) -> Optional[RepairTicket]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"""
                SELECT {TICKET_COLUMNS}, {PREFIXED_ASSET_COLUMNS}, {OWNER_COLUMNS}
                FROM ticketing.repair_tickets t
                JOIN ticketing.assets a ON a.id = t.asset_id
                JOIN ticketing.customers c ON c.id = a.customer_id
                WHERE t.id = %s;
                """,
                (ticket_id,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        return row_to_ticket(row, with_context=True)

    async def get_by_asset(self, asset_id: UUID) -> list[RepairTicket]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"""
                SELECT {TICKET_COLUMNS}
                FROM ticketing.repair_tickets t
                WHERE t.asset_id = %s
                ORDER BY t.created_at DESC, t.id DESC;
                """,
                (asset_id,),
            )
            rows = await cur.fetchall()
        return [row_to_ticket(r) for r in rows]

    async def create(self, ticket: RepairTicket) -> RepairTicket:
        ticket = validate_ticket(ticket)
        if ticket.status is not RepairStatus.CREATED:
            raise ValidationError("status", "new tickets start in the 'created' state")

        try:
            async with self.db.transaction() as conn:
                if not await asset_exists(conn, ticket.asset_id):
                    raise ReferentialError(f"Asset {ticket.asset_id} does not exist")
                cur = await conn.execute(
                    f"""
                    INSERT INTO ticketing.repair_tickets AS t
                      (asset_id, title, description, status, estimated_cost, actual_cost, technician_notes)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING {TICKET_COLUMNS};
                    """,
                    (
                        ticket.asset_id,
                        ticket.title,
                        ticket.description,
                        ticket.status.value,
                        ticket.estimated_cost,
                        ticket.actual_cost,
                        ticket.technician_notes,
                    ),
                )
                stored = row_to_ticket(await cur.fetchone())
        except errors.ForeignKeyViolation as e:
            raise ReferentialError(f"Asset {ticket.asset_id} does not exist") from e

        log.info("ticket_created", ticket_id=str(stored.id), asset_id=str(stored.asset_id))
        return stored

    async def update(self, ticket: RepairTicket) -> bool:
        validate_ticket(ticket)
        async with self.db.transaction() as conn:
            cur = await conn.execute(
                f"SELECT {TICKET_COLUMNS} FROM ticketing.repair_tickets t WHERE t.id = %s FOR UPDATE;",
                (ticket.id,),
            )
            row = await cur.fetchone()
            if not row:
                log.info("ticket_update_rejected", ticket_id=str(ticket.id), reason="not_found")
                return False

            stored = row_to_ticket(row)
            merged = merge_ticket_update(
                stored, ticket, now=await _clock(conn), require_actual_cost=self.require_actual_cost
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

            await conn.execute(
                """
                UPDATE ticketing.repair_tickets
                SET title = %s, description = %s, status = %s, estimated_cost = %s, actual_cost = %s,
                    technician_notes = %s, updated_at = %s, completed_at = %s
                WHERE id = %s;
                """,
                (
                    merged.title,
                    merged.description,
                    merged.status.value,
                    merged.estimated_cost,
                    merged.actual_cost,
                    merged.technician_notes,
                    merged.updated_at,
                    merged.completed_at,
                    merged.id,
                ),
            )

        if merged.status is not stored.status:
            log.info(
                "ticket_status_changed",
                ticket_id=str(merged.id),
                old=stored.status.value,
                new=merged.status.value,
            )
        return True
