from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from psycopg import AsyncConnection, errors

from ..db import Db
from ..domain import Customer, ReferentialError, validate_customer

log = structlog.get_logger(__name__)

CUSTOMER_COLUMNS = "id, first_name, last_name, email, phone_number, address, created_at, updated_at"


def row_to_customer(row: dict) -> Customer:
    return Customer(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        phone_number=row["phone_number"],
        address=row["address"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def customer_exists(conn: AsyncConnection, customer_id: UUID) -> bool:
    cur = await conn.execute(
        "SELECT 1 FROM ticketing.customers WHERE id = %s FOR KEY SHARE;",
        (customer_id,),
    )
    return await cur.fetchone() is not None


class PgCustomerRepository:
    def __init__(self, db: Db) -> None:
        self.db = db

    async def create(self, customer: Customer) -> Customer:
        validate_customer(customer)
        async with self.db.transaction() as conn:
            cur = await conn.execute(
                f"""
                INSERT INTO ticketing.customers(first_name, last_name, email, phone_number, address)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {CUSTOMER_COLUMNS};
                """,
                (customer.first_name, customer.last_name, customer.email, customer.phone_number, customer.address),
            )
            stored = row_to_customer(await cur.fetchone())
        log.info("customer_registered", customer_id=str(stored.id))
        return stored

    async def get_by_id(self, customer_id: UUID) -> Optional[Customer]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"SELECT {CUSTOMER_COLUMNS} FROM ticketing.customers WHERE id = %s;",
                (customer_id,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        return row_to_customer(row)

    async def list(self, limit: int = 50) -> list[Customer]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM ticketing.customers
                ORDER BY created_at DESC, id DESC
                LIMIT %s;
                """,
                (limit,),
            )
            rows = await cur.fetchall()
        return [row_to_customer(r) for r in rows]

    async def update(self, customer: Customer) -> bool:
        validate_customer(customer)
        async with self.db.transaction() as conn:
            cur = await conn.execute(
                """
                UPDATE ticketing.customers
                SET first_name = %s, last_name = %s, email = %s, phone_number = %s, address = %s,
                    updated_at = GREATEST(clock_timestamp(), COALESCE(updated_at, created_at) + interval '1 microsecond')
                WHERE id = %s;
                """,
                (
                    customer.first_name,
                    customer.last_name,
                    customer.email,
                    customer.phone_number,
                    customer.address,
                    customer.id,
                ),
            )
            updated = cur.rowcount == 1
        if not updated:
            log.info("customer_update_rejected", customer_id=str(customer.id), reason="not_found")
        return updated

    async def delete(self, customer_id: UUID) -> bool:
        try:
            async with self.db.transaction() as conn:
                cur = await conn.execute("DELETE FROM ticketing.customers WHERE id = %s;", (customer_id,))
                deleted = cur.rowcount == 1
        except errors.ForeignKeyViolation as e:
            log.info("customer_delete_rejected", customer_id=str(customer_id), reason="owns_assets")
            raise ReferentialError(f"Customer {customer_id} still owns assets") from e
        return deleted
