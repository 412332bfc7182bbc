from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from importlib import resources

import psycopg
import structlog
from psycopg import AsyncConnection
from psycopg.rows import dict_row

from .config import DbConfig

log = structlog.get_logger(__name__)

RETRY_BACKOFF_SECONDS = 0.5


class DbError(Exception):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    async def connect(self) -> AsyncConnection:
        attempts = self.cfg.connect_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await AsyncConnection.connect(
                    host=self.cfg.host,
                    port=self.cfg.port,
                    dbname=self.cfg.name,
                    user=self.cfg.user,
                    password=self.cfg.password,
                    sslmode=self.cfg.sslmode,
                    connect_timeout=self.cfg.connect_timeout,
                    autocommit=True,
                    row_factory=dict_row,
                )
            except psycopg.OperationalError as e:
                if attempt == attempts:
                    raise DbError(
                        "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
                    ) from e
                log.warning("db_connect_retry", attempt=attempt, max_attempts=attempts, error=str(e))
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
        raise DbError("Cannot connect to database.")  # pragma: no cover

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncConnection]:
        conn = await self.connect()
        try:
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """BEGIN/COMMIT around the block; anything raised, cancellation included, rolls back."""
        conn = await self.connect()
        try:
            await conn.execute("BEGIN;")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK;")
                raise
            await conn.execute("COMMIT;")
        finally:
            await conn.close()

    async def apply_schema(self) -> None:
        sql = resources.files("repairdesk").joinpath("sql/schema.sql").read_text(encoding="utf-8")
        async with self.transaction() as conn:
            await conn.execute(sql)
        log.info("schema_applied", database=self.cfg.name)
