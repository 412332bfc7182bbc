from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from psycopg import AsyncConnection, errors

from ..db import Db
from ..domain import Asset, Customer, ReferentialError, validate_asset
from .customer_repo import customer_exists

log = structlog.get_logger(__name__)

ASSET_COLUMNS = (
    "a.id, a.customer_id, a.device_type, a.manufacturer, a.model, a.serial_number, a.notes, "
    "a.created_at, a.updated_at"
)
# owner columns, aliased so they can sit next to asset/ticket columns in one row
OWNER_COLUMNS = (
    "c.first_name AS c_first_name, c.last_name AS c_last_name, c.email AS c_email, "
    "c.phone_number AS c_phone_number, c.address AS c_address, "
    "c.created_at AS c_created_at, c.updated_at AS c_updated_at"
)


def row_to_asset(row: dict, prefix: str = "", with_owner: bool = False) -> Asset:
    customer = None
    if with_owner:
        customer = Customer(
            id=row[f"{prefix}customer_id"],
            first_name=row["c_first_name"],
            last_name=row["c_last_name"],
            email=row["c_email"],
            phone_number=row["c_phone_number"],
            address=row["c_address"],
            created_at=row["c_created_at"],
            updated_at=row["c_updated_at"],
        )
    return Asset(
        id=row[f"{prefix}id"],
        customer_id=row[f"{prefix}customer_id"],
        device_type=row[f"{prefix}device_type"],
        manufacturer=row[f"{prefix}manufacturer"],
        model=row[f"{prefix}model"],
        serial_number=row[f"{prefix}serial_number"],
        notes=row[f"{prefix}notes"],
        created_at=row[f"{prefix}created_at"],
        updated_at=row[f"{prefix}updated_at"],
        customer=customer,
    )


async def asset_exists(conn: AsyncConnection, asset_id: UUID) -> bool:
    cur = await conn.execute(
        "SELECT 1 FROM ticketing.assets WHERE id = %s FOR KEY SHARE;",
        (asset_id,),
    )
    return await cur.fetchone() is not None


class PgAssetRepository:
    def __init__(self, db: Db) -> None:
        self.db = db

    async def create(self, asset: Asset) -> Asset:
        validate_asset(asset)
        async with self.db.transaction() as conn:
            if not await customer_exists(conn, asset.customer_id):
                raise ReferentialError(f"Customer {asset.customer_id} does not exist")
            cur = await conn.execute(
                """
                INSERT INTO ticketing.assets(customer_id, device_type, manufacturer, model, serial_number, notes)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id, customer_id, device_type, manufacturer, model, serial_number, notes,
                          created_at, updated_at;
                """,
                (
                    asset.customer_id,
                    asset.device_type,
                    asset.manufacturer,
                    asset.model,
                    asset.serial_number,
                    asset.notes,
                ),
            )
            stored = row_to_asset(await cur.fetchone())
        log.info("asset_registered", asset_id=str(stored.id), customer_id=str(stored.customer_id))
        return stored

    async def get_by_id(self, asset_id: UUID) -> Optional[Asset]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"""
                SELECT {ASSET_COLUMNS}, {OWNER_COLUMNS}
                FROM ticketing.assets a
                JOIN ticketing.customers c ON c.id = a.customer_id
                WHERE a.id = %s;
                """,
                (asset_id,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        return row_to_asset(row, with_owner=True)

    async def list_by_customer(self, customer_id: UUID) -> list[Asset]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"""
                SELECT {ASSET_COLUMNS}
                FROM ticketing.assets a
                WHERE a.customer_id = %s
                ORDER BY a.created_at DESC, a.id DESC;
                """,
                (customer_id,),
            )
            rows = await cur.fetchall()
        return [row_to_asset(r) for r in rows]

    async def update(self, asset: Asset) -> bool:
        validate_asset(asset)
        async with self.db.transaction() as conn:
            if not await asset_exists(conn, asset.id):
                log.info("asset_update_rejected", asset_id=str(asset.id), reason="not_found")
                return False
            if not await customer_exists(conn, asset.customer_id):
                raise ReferentialError(f"Customer {asset.customer_id} does not exist")
            cur = await conn.execute(
                """
                UPDATE ticketing.assets
                SET customer_id = %s, device_type = %s, manufacturer = %s, model = %s,
                    serial_number = %s, notes = %s,
                    updated_at = GREATEST(clock_timestamp(), COALESCE(updated_at, created_at) + interval '1 microsecond')
                WHERE id = %s;
                """,
                (
                    asset.customer_id,
                    asset.device_type,
                    asset.manufacturer,
                    asset.model,
                    asset.serial_number,
                    asset.notes,
                    asset.id,
                ),
            )
            updated = cur.rowcount == 1
        if not updated:
            log.info("asset_update_rejected", asset_id=str(asset.id), reason="not_found")
        return updated

    async def delete(self, asset_id: UUID) -> bool:
        try:
            async with self.db.transaction() as conn:
                cur = await conn.execute("DELETE FROM ticketing.assets WHERE id = %s;", (asset_id,))
                deleted = cur.rowcount == 1
        except errors.ForeignKeyViolation as e:
            log.info("asset_delete_rejected", asset_id=str(asset_id), reason="has_tickets")
            raise ReferentialError(f"Asset {asset_id} still has repair tickets") from e
        return deleted
