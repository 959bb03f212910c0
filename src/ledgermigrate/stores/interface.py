"""
Store interfaces consumed by the migration engine.

The engine never talks to a database driver directly. It reads from a
SourceStore (the document-oriented ledger) and writes to / reads back from
a TargetStore (the relational ledger). Implementations only have to honor
the contracts below.

This module provides:
- SourceStore: Abstract base class for the source reader
- TargetStore: Abstract base class for the target writer/reader
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledgermigrate.models import (
    EntityType,
    IdentityMapping,
    SourceAccount,
    SourceBatch,
    SourceRecord,
    SourceTransaction,
    SourceUser,
    TargetAccount,
    TargetTransaction,
    TargetUser,
    parse_documents,
)


class SourceStore(ABC):
    """
    Abstract base class for source store readers.

    Implementations only fetch raw documents; parsing into source models
    happens here, once, for every backend. A document that does not validate
    is returned as a RejectedDocument next to the parsed records, so one bad
    document never hides its siblings.

    Listings may be read again to get the same data (the auditor reads the
    source independently of the migration). Ordering is not significant.

    Implementations raise StoreIOError when the store is unreachable.

    Concrete implementations:
    - InMemorySourceStore: For testing and demos
    - MongoSourceStore: Reads a MongoDB database through pymongo
    """

    @abstractmethod
    async def read_documents(
        self, entity_type: EntityType
    ) -> Sequence[SourceRecord | Mapping[str, Any]]:
        """
        Read every document of one entity type.

        Args:
            entity_type: Which collection to read.

        Returns:
            Raw documents (camelCase keys, ``_id``) or already parsed records.
        """
        ...

    async def load(self, entity_type: EntityType) -> SourceBatch:
        """Read and parse every document of one entity type."""
        return parse_documents(entity_type, await self.read_documents(entity_type))

    async def list_users(self) -> list[SourceUser]:
        """Read every user that parses."""
        return (await self.load(EntityType.USER)).records  # type: ignore[return-value]

    async def list_accounts(self) -> list[SourceAccount]:
        """Read every account that parses."""
        return (await self.load(EntityType.ACCOUNT)).records  # type: ignore[return-value]

    async def list_transactions(self) -> list[SourceTransaction]:
        """Read every transaction that parses."""
        return (await self.load(EntityType.TRANSACTION)).records  # type: ignore[return-value]


class TargetStore(ABC):
    """
    Abstract base class for target store writers and readers.

    Writes are atomic per record. Every row remembers the ``source_id`` it
    was migrated from; that column doubles as the persisted identity map, so
    a later run can restore its mappings with load_identity_mappings().

    Implementations raise StoreIOError when the store is unreachable or
    rejects a write.

    Concrete implementations:
    - InMemoryTargetStore: For testing and demos
    - SQLiteTargetStore: aiosqlite-backed relational store
    - PostgreSQLTargetStore: SQLAlchemy async-backed relational store
    """

    # Writes

    @abstractmethod
    async def insert_user(self, user: TargetUser) -> UUID:
        """
        Insert a migrated user.

        Args:
            user: The user row to insert.

        Returns:
            The target identifier of the inserted row.
        """
        ...

    @abstractmethod
    async def insert_account(self, account: TargetAccount) -> UUID:
        """Insert a migrated account and return its target identifier."""
        ...

    @abstractmethod
    async def insert_transaction(self, transaction: TargetTransaction) -> UUID:
        """Insert a migrated transaction and return its target identifier."""
        ...

    @abstractmethod
    async def update_account_aggregates(
        self,
        account_id: UUID,
        daily_transfer_total: Decimal,
        monthly_transfer_total: Decimal,
    ) -> None:
        """
        Write recomputed transfer totals onto an account.

        Args:
            account_id: Target identifier of the account.
            daily_transfer_total: Outgoing transfers in the reference day.
            monthly_transfer_total: Outgoing transfers in the reference month.
        """
        ...

    # Reads

    @abstractmethod
    async def list_users(self) -> list[TargetUser]:
        ...

    @abstractmethod
    async def list_accounts(self) -> list[TargetAccount]:
        ...

    @abstractmethod
    async def list_transactions(self) -> list[TargetTransaction]:
        ...

    @abstractmethod
    async def get_user_by_source_id(self, source_id: str) -> TargetUser | None:
        ...

    @abstractmethod
    async def get_account_by_source_id(self, source_id: str) -> TargetAccount | None:
        ...

    @abstractmethod
    async def get_transaction_by_source_id(self, source_id: str) -> TargetTransaction | None:
        ...

    async def load_identity_mappings(self) -> list[IdentityMapping]:
        """
        Rebuild the identity map persisted by previous runs.

        The default implementation scans the three tables; stores with a
        cheaper way to read (source_id, id) pairs may override it.

        Returns:
            One mapping per migrated row.
        """
        users = await self.list_users()
        accounts = await self.list_accounts()
        transactions = await self.list_transactions()
        return [
            *(IdentityMapping(EntityType.USER, u.source_id, u.id) for u in users),
            *(IdentityMapping(EntityType.ACCOUNT, a.source_id, a.id) for a in accounts),
            *(IdentityMapping(EntityType.TRANSACTION, t.source_id, t.id) for t in transactions),
        ]
