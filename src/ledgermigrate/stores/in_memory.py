"""
In-memory source and target stores.

Useful for testing, demos and dry runs. Not suitable for production as all
records are lost when the process terminates.
"""

import asyncio
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledgermigrate.exceptions import StoreIOError
from ledgermigrate.models import (
    EntityType,
    SourceAccount,
    SourceRecord,
    SourceTransaction,
    SourceUser,
    TargetAccount,
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
from ledgermigrate.stores.interface import SourceStore, TargetStore


class InMemorySourceStore(SourceStore):
    """
    In-memory document store holding source records.

    Records may be given as models or as raw documents (camelCase keys,
    ``_id`` identifiers). Raw documents are parsed when read, so an invalid
    one surfaces as a rejected document of its listing.

    Example:
        >>> source = InMemorySourceStore(
        ...     users=[{"_id": "mongo-id-1", "name": "Ana", ...}],
        ...     accounts=[...],
        ...     transactions=[...],
        ... )
        >>> users = await source.list_users()
    """

    def __init__(
        self,
        users: Iterable[SourceUser | Mapping[str, Any]] = (),
        accounts: Iterable[SourceAccount | Mapping[str, Any]] = (),
        transactions: Iterable[SourceTransaction | Mapping[str, Any]] = (),
    ) -> None:
        self._documents: dict[EntityType, list[SourceRecord | Mapping[str, Any]]] = {
            EntityType.USER: list(users),
            EntityType.ACCOUNT: list(accounts),
            EntityType.TRANSACTION: list(transactions),
        }

    async def read_documents(
        self, entity_type: EntityType
    ) -> list[SourceRecord | Mapping[str, Any]]:
        return list(self._documents[entity_type])


class InMemoryTargetStore(TargetStore):
    """
    In-memory implementation of the relational target store.

    Enforces the same uniqueness and foreign-key rules as the SQL schema
    (unique source_id per table, unique email, unique account number,
    existing parent rows) and reports violations as StoreIOError, the way a
    database would reject the write.

    Thread-safety:
        Uses an asyncio lock around writes. Safe for concurrent async
        operations within a single process.

    Attributes:
        _users: Users by target id
        _accounts: Accounts by target id
        _transactions: Transactions by target id
        _by_source: Per table index of source_id -> target id
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._users: dict[UUID, TargetUser] = {}
        self._accounts: dict[UUID, TargetAccount] = {}
        self._transactions: dict[UUID, TargetTransaction] = {}
        self._by_source: dict[str, dict[str, UUID]] = {
            "users": {},
            "accounts": {},
            "transactions": {},
        }
        self._lock: asyncio.Lock = asyncio.Lock()

    async def insert_user(self, user: TargetUser) -> UUID:
        with self._tracer.span(
            "ledgermigrate.in_memory_store.insert_user",
            self._write_attributes(user.source_id, user.id),
        ):
            async with self._lock:
                self._check_new("users", user.source_id, user.id, self._users)
                if any(existing.email == user.email for existing in self._users.values()):
                    raise StoreIOError(
                        "memory", "insert_user", f"duplicate email {user.email!r}"
                    )
                self._users[user.id] = user
                self._by_source["users"][user.source_id] = user.id
                return user.id

    async def insert_account(self, account: TargetAccount) -> UUID:
        with self._tracer.span(
            "ledgermigrate.in_memory_store.insert_account",
            self._write_attributes(account.source_id, account.id),
        ):
            async with self._lock:
                self._check_new("accounts", account.source_id, account.id, self._accounts)
                if account.user_id not in self._users:
                    raise StoreIOError(
                        "memory", "insert_account", f"unknown user {account.user_id}"
                    )
                if any(
                    existing.account_number == account.account_number
                    for existing in self._accounts.values()
                ):
                    raise StoreIOError(
                        "memory",
                        "insert_account",
                        f"duplicate account number {account.account_number!r}",
                    )
                self._accounts[account.id] = account
                self._by_source["accounts"][account.source_id] = account.id
                return account.id

    async def insert_transaction(self, transaction: TargetTransaction) -> UUID:
        with self._tracer.span(
            "ledgermigrate.in_memory_store.insert_transaction",
            self._write_attributes(transaction.source_id, transaction.id),
        ):
            async with self._lock:
                self._check_new(
                    "transactions", transaction.source_id, transaction.id, self._transactions
                )
                for account_id in (
                    transaction.source_account_id,
                    transaction.destination_account_id,
                ):
                    if account_id is not None and account_id not in self._accounts:
                        raise StoreIOError(
                            "memory", "insert_transaction", f"unknown account {account_id}"
                        )
                self._transactions[transaction.id] = transaction
                self._by_source["transactions"][transaction.source_id] = transaction.id
                return transaction.id

    async def update_account_aggregates(
        self,
        account_id: UUID,
        daily_transfer_total: Decimal,
        monthly_transfer_total: Decimal,
    ) -> None:
        with self._tracer.span(
            "ledgermigrate.in_memory_store.update_account_aggregates",
            {ATTR_DB_SYSTEM: "memory", ATTR_TARGET_ID: str(account_id)},
        ):
            async with self._lock:
                account = self._accounts.get(account_id)
                if account is None:
                    raise StoreIOError(
                        "memory", "update_account_aggregates", f"unknown account {account_id}"
                    )
                self._accounts[account_id] = account.model_copy(
                    update={
                        "daily_transfer_total": daily_transfer_total,
                        "monthly_transfer_total": monthly_transfer_total,
                    }
                )

    async def list_users(self) -> list[TargetUser]:
        return list(self._users.values())

    async def list_accounts(self) -> list[TargetAccount]:
        return list(self._accounts.values())

    async def list_transactions(self) -> list[TargetTransaction]:
        return list(self._transactions.values())

    async def get_user_by_source_id(self, source_id: str) -> TargetUser | None:
        target_id = self._by_source["users"].get(source_id)
        return self._users.get(target_id) if target_id else None

    async def get_account_by_source_id(self, source_id: str) -> TargetAccount | None:
        target_id = self._by_source["accounts"].get(source_id)
        return self._accounts.get(target_id) if target_id else None

    async def get_transaction_by_source_id(self, source_id: str) -> TargetTransaction | None:
        target_id = self._by_source["transactions"].get(source_id)
        return self._transactions.get(target_id) if target_id else None

    def clear(self) -> None:
        """Remove every row. Useful between tests."""
        self._users.clear()
        self._accounts.clear()
        self._transactions.clear()
        for index in self._by_source.values():
            index.clear()

    def _check_new(
        self,
        table: str,
        source_id: str,
        target_id: UUID,
        rows: Mapping[UUID, Any],
    ) -> None:
        if target_id in rows:
            raise StoreIOError("memory", f"insert into {table}", f"duplicate id {target_id}")
        if source_id in self._by_source[table]:
            raise StoreIOError(
                "memory", f"insert into {table}", f"duplicate source_id {source_id!r}"
            )

    def _write_attributes(self, source_id: str, target_id: UUID) -> dict[str, Any]:
        return {
            ATTR_DB_SYSTEM: "memory",
            ATTR_DB_OPERATION: "INSERT",
            ATTR_SOURCE_ID: source_id,
            ATTR_TARGET_ID: str(target_id),
        }
