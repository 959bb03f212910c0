"""
SQLite target store implementation.

Lightweight relational target using SQLite with async support via
aiosqlite. Suitable for development, tests, dry runs and single-machine
migrations; use PostgreSQLTargetStore for the production ledger.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

import aiosqlite

from ledgermigrate.exceptions import StoreIOError
from ledgermigrate.models import (
    TargetAccount,
    TargetRecord,
    TargetTransaction,
    TargetUser,
)
from ledgermigrate.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_SOURCE_ID,
    ATTR_TARGET_ID,
    Tracer,
    create_tracer,
)
from ledgermigrate.stores._codec import (
    columns_of,
    decode_row,
    encode_row,
    insert_statement,
)
from ledgermigrate.stores.interface import TargetStore
from ledgermigrate.stores.schema import get_schema

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=TargetRecord)


class SQLiteTargetStore(TargetStore):
    """
    SQLite implementation of the target store.

    SQLite-specific adaptations:
    - UUIDs stored as TEXT (36 characters, hyphenated format)
    - Decimals stored as TEXT so no precision is lost
    - Timestamps stored as TEXT in ISO 8601 format
    - Transaction metadata stored as JSON TEXT

    Each insert runs in its own transaction. Writes are serialized with an
    asyncio lock because every worker shares the single connection.

    Attributes:
        _database: Path to SQLite file or ':memory:' for in-memory database
        _busy_timeout: Timeout in ms for busy database
        _connection: The aiosqlite connection (set after connect/initialize)

    Example:
        >>> async with SQLiteTargetStore("ledger.db") as target:
        ...     await target.initialize()
        ...     orchestrator = MigrationOrchestrator(source, target)
        ...     summary = await orchestrator.run_migration()
    """

    def __init__(
        self,
        database: str,
        *,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite target store.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: If True, emit traces (default: True).
                          Ignored if tracer is explicitly provided.
        """
        self._database = database
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def __aenter__(self) -> SQLiteTargetStore:
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _connect(self) -> None:
        if self._connection is not None:
            return

        try:
            self._connection = await aiosqlite.connect(self._database)
            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
        except aiosqlite.Error as e:
            raise StoreIOError("sqlite", "connect", str(e)) from e

        self._connection.row_factory = aiosqlite.Row
        logger.debug("Connected to SQLite database: %s", self._database)

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self) -> None:
        """
        Create the users, accounts and transactions tables.

        This method is idempotent - safe to call multiple times.
        """
        if self._connection is None:
            await self._connect()
        conn = self._ensure_connected()

        try:
            await conn.executescript(get_schema("sqlite"))
            await conn.commit()
        except aiosqlite.Error as e:
            raise StoreIOError("sqlite", "initialize", str(e)) from e

        logger.info("Initialized SQLite target schema: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with store:' or call 'initialize()' first."
            )
        return self._connection

    # Writes

    async def insert_user(self, user: TargetUser) -> UUID:
        return await self._insert("users", user)

    async def insert_account(self, account: TargetAccount) -> UUID:
        return await self._insert("accounts", account)

    async def insert_transaction(self, transaction: TargetTransaction) -> UUID:
        return await self._insert("transactions", transaction)

    async def _insert(self, table: str, record: TargetRecord) -> UUID:
        with self._tracer.span(
            f"ledgermigrate.sqlite_store.insert_{table}",
            {
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
                ATTR_DB_OPERATION: "INSERT",
                ATTR_SOURCE_ID: record.source_id,
                ATTR_TARGET_ID: str(record.id),
            },
        ):
            conn = self._ensure_connected()
            query = insert_statement(table, columns_of(type(record)))
            async with self._write_lock:
                try:
                    await conn.execute(query, encode_row(record, as_text=True))
                    await conn.commit()
                except aiosqlite.Error as e:
                    await conn.rollback()
                    raise StoreIOError("sqlite", f"insert into {table}", str(e)) from e

            logger.debug("Inserted %s row %s (source %s)", table, record.id, record.source_id)
            return record.id

    async def update_account_aggregates(
        self,
        account_id: UUID,
        daily_transfer_total: Decimal,
        monthly_transfer_total: Decimal,
    ) -> None:
        with self._tracer.span(
            "ledgermigrate.sqlite_store.update_account_aggregates",
            {
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
                ATTR_DB_OPERATION: "UPDATE",
                ATTR_TARGET_ID: str(account_id),
            },
        ):
            conn = self._ensure_connected()
            async with self._write_lock:
                try:
                    cursor = await conn.execute(
                        """
                        UPDATE accounts
                        SET daily_transfer_total = ?, monthly_transfer_total = ?
                        WHERE id = ?
                        """,
                        (str(daily_transfer_total), str(monthly_transfer_total), str(account_id)),
                    )
                    await conn.commit()
                except aiosqlite.Error as e:
                    await conn.rollback()
                    raise StoreIOError("sqlite", "update_account_aggregates", str(e)) from e

            if cursor.rowcount == 0:
                raise StoreIOError(
                    "sqlite", "update_account_aggregates", f"unknown account {account_id}"
                )

    # Reads

    async def list_users(self) -> list[TargetUser]:
        return await self._select_all("users", TargetUser)

    async def list_accounts(self) -> list[TargetAccount]:
        return await self._select_all("accounts", TargetAccount)

    async def list_transactions(self) -> list[TargetTransaction]:
        return await self._select_all("transactions", TargetTransaction)

    async def get_user_by_source_id(self, source_id: str) -> TargetUser | None:
        return await self._select_by_source_id("users", TargetUser, source_id)

    async def get_account_by_source_id(self, source_id: str) -> TargetAccount | None:
        return await self._select_by_source_id("accounts", TargetAccount, source_id)

    async def get_transaction_by_source_id(self, source_id: str) -> TargetTransaction | None:
        return await self._select_by_source_id("transactions", TargetTransaction, source_id)

    async def _select_all(self, table: str, model: type[RecordT]) -> list[RecordT]:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(
                f"SELECT {', '.join(columns_of(model))} FROM {table} ORDER BY created_at, id"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreIOError("sqlite", f"select from {table}", str(e)) from e
        return [decode_row(model, _row_dict(row)) for row in rows]

    async def _select_by_source_id(
        self,
        table: str,
        model: type[RecordT],
        source_id: str,
    ) -> RecordT | None:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(
                f"SELECT {', '.join(columns_of(model))} FROM {table} WHERE source_id = ?",
                (source_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreIOError("sqlite", f"select from {table}", str(e)) from e
        return decode_row(model, _row_dict(row)) if row else None


def _row_dict(row: aiosqlite.Row) -> dict[str, Any]:
    return {key: row[key] for key in row.keys()}
