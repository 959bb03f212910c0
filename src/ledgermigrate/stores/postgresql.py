"""
PostgreSQL target store implementation.

Production target store using async SQLAlchemy. Queries are written as
plain SQL through ``text()`` against the tables created by
``ledgermigrate.stores.schema``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ledgermigrate.exceptions import StoreIOError
from ledgermigrate.models import (
    TargetAccount,
    TargetRecord,
    TargetTransaction,
    TargetUser,
)
from ledgermigrate.observability import (
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
from ledgermigrate.stores._connection import target_connection
from ledgermigrate.stores.interface import TargetStore
from ledgermigrate.stores.schema import get_schema_statements

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=TargetRecord)

_CASTS = {"metadata": "JSONB"}


class PostgreSQLTargetStore(TargetStore):
    """
    PostgreSQL implementation of the target store.

    Given an AsyncEngine, every write runs in its own transaction on a
    pooled connection, so the workers of a stage write in parallel. Given
    an AsyncConnection, the caller owns the transaction and calls are
    serialized on that connection.

    Attributes:
        conn: SQLAlchemy async engine or connection

    Example:
        >>> from sqlalchemy.ext.asyncio import create_async_engine
        >>>
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> target = PostgreSQLTargetStore(engine)
        >>> await target.initialize()
        >>> summary = await MigrationOrchestrator(source, target).run_migration()
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the PostgreSQL target store.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self.conn = conn
        self._connection_lock = asyncio.Lock()

    @contextlib.asynccontextmanager
    async def _connection(
        self,
        operation: str,
        transactional: bool = True,
    ) -> AsyncIterator[AsyncConnection]:
        async with target_connection(
            self.conn, operation, self._connection_lock, transactional
        ) as conn:
            yield conn

    async def initialize(self) -> None:
        """
        Create the target tables if they don't exist.

        This method is idempotent - safe to call multiple times.
        """
        async with self._connection("initialize") as conn:
            for statement in get_schema_statements("postgresql"):
                await conn.execute(text(statement))
        logger.info("Initialized PostgreSQL target schema")

    # Writes

    async def insert_user(self, user: TargetUser) -> UUID:
        return await self._insert("users", user)

    async def insert_account(self, account: TargetAccount) -> UUID:
        return await self._insert("accounts", account)

    async def insert_transaction(self, transaction: TargetTransaction) -> UUID:
        return await self._insert("transactions", transaction)

    async def _insert(self, table: str, record: TargetRecord) -> UUID:
        with self._tracer.span(
            f"ledgermigrate.postgresql_store.insert_{table}",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_OPERATION: "INSERT",
                ATTR_SOURCE_ID: record.source_id,
                ATTR_TARGET_ID: str(record.id),
            },
        ):
            query = text(insert_statement(table, columns_of(type(record)), _CASTS))
            async with self._connection(f"insert into {table}") as conn:
                await conn.execute(query, encode_row(record, as_text=False))

            logger.debug("Inserted %s row %s (source %s)", table, record.id, record.source_id)
            return record.id

    async def update_account_aggregates(
        self,
        account_id: UUID,
        daily_transfer_total: Decimal,
        monthly_transfer_total: Decimal,
    ) -> None:
        with self._tracer.span(
            "ledgermigrate.postgresql_store.update_account_aggregates",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_OPERATION: "UPDATE",
                ATTR_TARGET_ID: str(account_id),
            },
        ):
            query = text("""
                UPDATE accounts
                SET daily_transfer_total = :daily_transfer_total,
                    monthly_transfer_total = :monthly_transfer_total
                WHERE id = :account_id
            """)
            params = {
                "daily_transfer_total": daily_transfer_total,
                "monthly_transfer_total": monthly_transfer_total,
                "account_id": account_id,
            }
            async with self._connection("update_account_aggregates") as conn:
                result = await conn.execute(query, params)

            if result.rowcount == 0:
                raise StoreIOError(
                    "postgresql", "update_account_aggregates", f"unknown account {account_id}"
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
        query = text(
            f"SELECT {', '.join(columns_of(model))} FROM {table} ORDER BY created_at, id"
        )
        async with self._connection(f"select from {table}", transactional=False) as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()
        return [decode_row(model, row) for row in rows]

    async def _select_by_source_id(
        self,
        table: str,
        model: type[RecordT],
        source_id: str,
    ) -> RecordT | None:
        query = text(
            f"SELECT {', '.join(columns_of(model))} FROM {table} WHERE source_id = :source_id"
        )
        async with self._connection(f"select from {table}", transactional=False) as conn:
            result = await conn.execute(query, {"source_id": source_id})
            row = result.mappings().first()
        return decode_row(model, row) if row else None
