"""
Entity migrators.

One migrator per entity type turns a source record into a target record,
writes it, and registers the new identity with the run's IdentityMapper:

    - UserMigrator: copies users verbatim, rejects duplicate emails
    - AccountMigrator: remaps the owner, applies and validates limits
    - TransactionMigrator: remaps both accounts and stamps their numbers

Per-record problems (RecordError subclasses) are captured as a Failed
outcome so sibling records keep migrating. Anything else, store failures
and identity-mapper contract violations included, propagates to the
orchestrator and stops the run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID

from ledgermigrate.config import MigrationConfig
from ledgermigrate.exceptions import (
    MissingMappingError,
    MissingReferenceError,
    RecordError,
    ValidationError,
)
from ledgermigrate.identity import IdentityMapper
from ledgermigrate.limits import (
    apply_default_limits,
    validate_account_creation,
    validate_limits,
)
from ledgermigrate.models import (
    DEPOSIT,
    TRANSFER,
    WITHDRAWAL,
    AlreadyMigrated,
    EntityType,
    Failed,
    Migrated,
    RecordOutcome,
    SourceAccount,
    SourceRecord,
    SourceTransaction,
    SourceUser,
    TargetAccount,
    TargetRecord,
    TargetTransaction,
    TargetUser,
)
from ledgermigrate.observability import (
    ATTR_ENTITY_TYPE,
    ATTR_SOURCE_ID,
    ATTR_TARGET_ID,
    Tracer,
    create_tracer,
)
from ledgermigrate.stores.interface import TargetStore

logger = logging.getLogger(__name__)

SourceT = TypeVar("SourceT", bound=SourceRecord)

# Account references a transaction type must carry.
REQUIRED_REFERENCES: dict[str, tuple[str, ...]] = {
    TRANSFER: ("source_account_id", "destination_account_id"),
    DEPOSIT: ("destination_account_id",),
    WITHDRAWAL: ("source_account_id",),
}
_ALL_REFERENCES = ("source_account_id", "destination_account_id")


class EntityMigrator(ABC, Generic[SourceT]):
    """
    Base class for per-entity-type migrators.

    Subclasses implement _build() (pure transformation, may raise
    RecordError) and _write() (the target store insert). prepare() is
    called once by the orchestrator before the first record of the stage.

    Attributes:
        entity_type: Entity type this migrator produces.
    """

    entity_type: ClassVar[EntityType]

    def __init__(
        self,
        target: TargetStore,
        mapper: IdentityMapper,
        *,
        config: MigrationConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._target = target
        self._mapper = mapper
        self._config = config or MigrationConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def prepare(self) -> None:
        """Load whatever the migrator needs from the target before a stage."""
        return None

    async def migrate(self, record: SourceT) -> RecordOutcome:
        """
        Migrate one source record.

        Records already mapped (by this run or a previous one) are skipped.

        Args:
            record: The source record.

        Returns:
            Migrated, AlreadyMigrated or Failed.

        Raises:
            StoreIOError: If the target store rejects the write.
            IdentityMappingError: If the identity mapper contract is violated.
        """
        entity = self.entity_type.value
        with self._tracer.span(
            f"ledgermigrate.migrator.migrate_{entity}",
            {ATTR_ENTITY_TYPE: entity, ATTR_SOURCE_ID: record.source_id},
        ) as span:
            existing = self._mapper.get(self.entity_type, record.source_id)
            if existing is not None:
                logger.debug("Skipping %s %s: already migrated", entity, record.source_id)
                return AlreadyMigrated(self.entity_type, record.source_id, existing)

            try:
                target_record = self._build(record)
            except RecordError as e:
                logger.log(
                    e.severity.log_level,
                    "Failed to migrate %s %s: %s",
                    entity,
                    record.source_id,
                    e,
                )
                return Failed(self.entity_type, record.source_id, str(e), type(e).__name__)

            self._mapper.check_registrable(self.entity_type, record.source_id)
            target_id = await self._write(target_record)
            await self._mapper.register(self.entity_type, record.source_id, target_id)

            if span is not None:
                span.set_attribute(ATTR_TARGET_ID, str(target_id))
            logger.debug("Migrated %s %s -> %s", entity, record.source_id, target_id)
            return Migrated(self.entity_type, record.source_id, target_id)

    @abstractmethod
    def _build(self, record: SourceT) -> TargetRecord:
        """Transform a source record into the target row to insert."""
        ...

    @abstractmethod
    async def _write(self, record: Any) -> UUID:
        ...

    def _resolve_reference(self, entity_type: EntityType, source_id: str, field: str) -> UUID:
        """
        Translate a parent reference through the identity mapper.

        Raises:
            MissingMappingError: If the parent stage has not passed its
                barrier yet. This is an ordering bug and is fatal.
            MissingReferenceError: If the parent never migrated.
        """
        if not self._mapper.is_sealed(entity_type):
            raise MissingMappingError(
                entity_type,
                source_id,
                reason=f"{entity_type.value} stage has not completed",
            )
        try:
            return self._mapper.resolve(entity_type, source_id)
        except MissingMappingError:
            raise MissingReferenceError(entity_type, source_id, field) from None


class UserMigrator(EntityMigrator[SourceUser]):
    """
    Migrates users.

    Fields are copied verbatim, the password hash included. Emails must be
    unique across the run and against users already in the target store.
    """

    entity_type = EntityType.USER

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._emails: set[str] = set()

    async def prepare(self) -> None:
        self._emails = {user.email for user in await self._target.list_users()}

    def _build(self, record: SourceUser) -> TargetUser:
        if record.email in self._emails:
            raise ValidationError("email", f"email {record.email!r} is already in use")
        # Claimed before the write so concurrent workers see it.
        self._emails.add(record.email)
        return TargetUser(
            source_id=record.source_id,
            name=record.name,
            email=record.email,
            password=record.password,
            role=record.role,
            document_type=record.document_type,
            document_number=record.document_number,
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    async def _write(self, record: TargetUser) -> UUID:
        return await self._target.insert_user(record)


class AccountMigrator(EntityMigrator[SourceAccount]):
    """
    Migrates accounts.

    The owner is remapped through the identity mapper. The account must
    pass the same creation rules as a live account, missing limits are
    filled from the default limit policy, and the merged limits must pass
    validate_limits before the row is written.
    """

    entity_type = EntityType.ACCOUNT

    def _build(self, record: SourceAccount) -> TargetAccount:
        user_id = self._resolve_reference(EntityType.USER, record.user_id, "userId")

        validate_account_creation(
            {
                "userId": record.user_id,
                "accountType": record.account_type.value,
                "name": record.name,
                "currency": record.currency,
            },
            self._config.supported_currencies,
        )

        merged = apply_default_limits(record)
        limits = validate_limits(
            {
                "dailyTransferLimit": merged.daily_transfer_limit,
                "monthlyTransferLimit": merged.monthly_transfer_limit,
            }
        )

        return TargetAccount(
            source_id=record.source_id,
            user_id=user_id,
            account_number=record.account_number,
            account_type=record.account_type,
            name=record.name,
            currency=record.currency,
            balance=record.balance,
            status=record.status,
            daily_transfer_limit=limits.daily,
            monthly_transfer_limit=limits.monthly,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    async def _write(self, record: TargetAccount) -> UUID:
        return await self._target.insert_account(record)


class TransactionMigrator(EntityMigrator[SourceTransaction]):
    """
    Migrates transactions.

    Which account references are required depends on the transaction type:
    transfers need both, deposits a destination, withdrawals a source; any
    other type needs both. A reference that is given but dangling fails the
    record even when it is optional, so no reference is silently dropped.

    The target account numbers are stamped next to the resolved ids.
    """

    entity_type = EntityType.TRANSACTION

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._accounts: dict[UUID, TargetAccount] = {}

    async def prepare(self) -> None:
        self._accounts = {account.id: account for account in await self._target.list_accounts()}

    def _build(self, record: SourceTransaction) -> TargetTransaction:
        required = REQUIRED_REFERENCES.get(record.transaction_type, _ALL_REFERENCES)
        resolved: dict[str, TargetAccount | None] = {}
        for field in _ALL_REFERENCES:
            source_id = getattr(record, field)
            if source_id is None:
                if field in required:
                    raise ValidationError(
                        _camel(field),
                        f"{_camel(field)} is required for a {record.transaction_type}",
                    )
                resolved[field] = None
                continue
            account_id = self._resolve_reference(EntityType.ACCOUNT, source_id, _camel(field))
            resolved[field] = self._account(account_id)

        if record.amount <= 0:
            raise ValidationError("amount", "amount must be greater than zero")

        for field, account in resolved.items():
            if account is not None and account.currency != record.currency:
                raise ValidationError(
                    "currency",
                    f"currency {record.currency} does not match {_camel(field)} "
                    f"account {account.account_number} ({account.currency})",
                )

        source_account = resolved["source_account_id"]
        destination_account = resolved["destination_account_id"]
        return TargetTransaction(
            source_id=record.source_id,
            source_account_id=source_account.id if source_account else None,
            destination_account_id=destination_account.id if destination_account else None,
            source_account_number=source_account.account_number if source_account else None,
            destination_account_number=(
                destination_account.account_number if destination_account else None
            ),
            amount=record.amount,
            currency=record.currency,
            transaction_type=record.transaction_type,
            status=record.status,
            description=record.description,
            metadata=record.metadata,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    async def _write(self, record: TargetTransaction) -> UUID:
        return await self._target.insert_transaction(record)

    def _account(self, account_id: UUID) -> TargetAccount:
        account = self._accounts.get(account_id)
        if account is None:
            # Mapped but not loaded: prepare() was skipped or the target
            # lost the row.
            raise MissingMappingError(
                EntityType.ACCOUNT,
                str(account_id),
                reason="mapped account is not present in the target store",
            )
        return account


def _camel(field: str) -> str:
    head, *rest = field.split("_")
    return head + "".join(part.title() for part in rest)
