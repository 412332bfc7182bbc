from __future__ import annotations

from uuid import UUID

import structlog

from ..db import Db
from ..domain import ValidationError

log = structlog.get_logger(__name__)


def check_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity", f"must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise ValidationError("quantity", "must be > 0")
    return quantity


class PgInventoryRepository:
    """Stock held in ``inventory.stock_items``.

    Reservations and releases are single conditional UPDATEs: the row lock
    taken by the UPDATE serializes concurrent callers, and a failed
    condition changes nothing.
    """

    def __init__(self, db: Db) -> None:
        self.db = db

    async def get_stock_level(self, product_id: UUID) -> int:
        async with self.db.session() as conn:
            cur = await conn.execute(
                "SELECT on_hand - reserved AS available FROM inventory.stock_items WHERE product_id = %s;",
                (product_id,),
            )
            row = await cur.fetchone()
        if not row:
            return 0
        return int(row["available"])

    async def reserve_stock(self, product_id: UUID, quantity: int) -> bool:
        check_quantity(quantity)
        async with self.db.transaction() as conn:
            cur = await conn.execute(
                """
                UPDATE inventory.stock_items
                SET reserved = reserved + %s, updated_at = now()
                WHERE product_id = %s AND on_hand - reserved >= %s;
                """,
                (quantity, product_id, quantity),
            )
            reserved = cur.rowcount == 1
        if reserved:
            log.info("stock_reserved", product_id=str(product_id), quantity=quantity)
        else:
            log.info("stock_reserve_rejected", product_id=str(product_id), quantity=quantity, reason="insufficient")
        return reserved

    async def release_stock(self, product_id: UUID, quantity: int) -> bool:
        check_quantity(quantity)
        async with self.db.transaction() as conn:
            cur = await conn.execute(
                """
                UPDATE inventory.stock_items
                SET reserved = reserved - %s, updated_at = now()
                WHERE product_id = %s AND reserved >= %s;
                """,
                (quantity, product_id, quantity),
            )
            released = cur.rowcount == 1
        if released:
            log.info("stock_released", product_id=str(product_id), quantity=quantity)
        else:
            log.info("stock_release_rejected", product_id=str(product_id), quantity=quantity, reason="over_release")
        return released

    async def receive_stock(self, product_id: UUID, quantity: int) -> int:
        check_quantity(quantity)
        async with self.db.transaction() as conn:
            cur = await conn.execute(
                """
                INSERT INTO inventory.stock_items(product_id, on_hand)
                VALUES (%s, %s)
                ON CONFLICT (product_id) DO UPDATE SET
                  on_hand = inventory.stock_items.on_hand + EXCLUDED.on_hand,
                  updated_at = now()
                RETURNING on_hand - reserved AS available;
                """,
                (product_id, quantity),
            )
            available = int((await cur.fetchone())["available"])
        log.info("stock_received", product_id=str(product_id), quantity=quantity, available=available)
        return available
