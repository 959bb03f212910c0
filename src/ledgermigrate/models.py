"""
Data models for the ledger migration engine.

Entity models are frozen pydantic models with explicit field sets, one
variant per side of the migration:

    - SourceUser / SourceAccount / SourceTransaction: document-store shapes
      (camelCase keys, ``_id`` identifiers, loosely populated documents).
    - TargetUser / TargetAccount / TargetTransaction: relational rows keyed
      by a new UUID, each remembering the ``source_id`` it came from.

parse_documents() turns raw documents into a SourceBatch: the parsed records
plus a RejectedDocument for each document that failed validation.

Run bookkeeping models are dataclasses:

    - IdentityMapping: one (entity type, source id) -> target id entry
    - Migrated / AlreadyMigrated / Failed: per-record outcomes
    - MigrationSummary: accumulator for one orchestrator run
    - StageProgress: progress snapshot emitted after every stage
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from ledgermigrate.aggregates import RecomputationResult


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntityType(Enum):
    """Entity types handled by the migration, in dependency order."""

    USER = "user"
    ACCOUNT = "account"
    TRANSACTION = "transaction"

    @property
    def plural(self) -> str:
        """Plural name used for summary fields and table names."""
        return f"{self.value}s"


class UserRole(Enum):
    CLIENT = "client"
    ADMIN = "admin"


class AccountType(Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    CRYPTO = "crypto"


class AccountStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class TransactionStatus(Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


TRANSFER = "transfer"
DEPOSIT = "deposit"
WITHDRAWAL = "withdrawal"


# =============================================================================
# Source-side entities
# =============================================================================


class SourceRecord(BaseModel):
    """
    Base class for records read from the document store.

    Documents use camelCase keys and keep their identifier under ``_id``.
    Keys holding ``None`` are treated as absent so field defaults apply,
    matching how the document store leaves optional fields unset.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    source_id: str = Field(..., alias="_id", min_length=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _drop_null_fields(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class SourceUser(SourceRecord):
    """A user document as stored in the source store."""

    name: str
    email: str
    password: str
    role: UserRole = UserRole.CLIENT
    document_type: str = "cpf"
    document_number: str = "00000000000"
    status: str = "active"


class SourceAccount(SourceRecord):
    """
    An account document as stored in the source store.

    Transfer limits are optional in the source schema and are kept in their
    raw form; the account migrator validates them and fills in defaults.
    """

    user_id: str
    account_number: str
    account_type: AccountType = AccountType.INTERNAL
    name: str
    currency: str
    balance: Decimal = Decimal("0")
    status: AccountStatus = AccountStatus.ACTIVE
    daily_transfer_limit: Decimal | str | None = None
    monthly_transfer_limit: Decimal | str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            currency = data.get("currency", "")
            return {**data, "name": f"{currency} Account"}
        return data

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()


class SourceTransaction(SourceRecord):
    """A transaction document as stored in the source store."""

    source_account_id: str | None = None
    destination_account_id: str | None = None
    amount: Decimal
    currency: str
    transaction_type: str = TRANSFER
    status: TransactionStatus = TransactionStatus.COMPLETED
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()


# =============================================================================
# Target-side entities
# =============================================================================


class TargetRecord(BaseModel):
    """Base class for rows written to the relational target store."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    source_id: str
    created_at: datetime
    updated_at: datetime


class TargetUser(TargetRecord):
    name: str
    email: str
    password: str
    role: UserRole
    document_type: str
    document_number: str
    status: str


class TargetAccount(TargetRecord):
    """
    A migrated account row.

    ``daily_transfer_total`` and ``monthly_transfer_total`` do not exist in
    the source schema; they are derived from migrated transactions by the
    aggregate recomputation stage.
    """

    user_id: UUID
    account_number: str
    account_type: AccountType
    name: str
    currency: str
    balance: Decimal
    status: AccountStatus
    daily_transfer_limit: Decimal = Field(..., ge=0)
    monthly_transfer_limit: Decimal = Field(..., ge=0)
    daily_transfer_total: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_transfer_total: Decimal = Field(default=Decimal("0"), ge=0)


class TargetTransaction(TargetRecord):
    """
    A migrated transaction row.

    Account numbers are denormalized next to the resolved account ids for
    downstream reporting.
    """

    source_account_id: UUID | None
    destination_account_id: UUID | None
    source_account_number: str | None
    destination_account_number: str | None
    amount: Decimal = Field(..., gt=0)
    currency: str
    transaction_type: str
    status: TransactionStatus
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Source listings
# =============================================================================

SOURCE_MODELS: dict[EntityType, type[SourceRecord]] = {
    EntityType.USER: SourceUser,
    EntityType.ACCOUNT: SourceAccount,
    EntityType.TRANSACTION: SourceTransaction,
}


@dataclass(frozen=True)
class RejectedDocument:
    """
    A source document that could not be parsed into its source model.

    Attributes:
        entity_type: Entity type the document was read as.
        source_id: The document's ``_id``, or "" when it has none.
        field: First offending key, as spelled in the document.
        reason: Human readable description of the problem.
    """

    entity_type: EntityType
    source_id: str
    field: str
    reason: str


@dataclass
class SourceBatch:
    """Parsed records of one entity type plus the documents that failed to parse."""

    entity_type: EntityType
    records: list[SourceRecord] = field(default_factory=list)
    rejected: list[RejectedDocument] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.rejected)


def parse_documents(
    entity_type: EntityType,
    documents: Iterable[SourceRecord | Mapping[str, Any]],
) -> SourceBatch:
    """
    Parse raw source documents, setting aside the ones that do not validate.

    Args:
        entity_type: Entity type of every document.
        documents: Raw documents (camelCase keys, ``_id``) or parsed records.

    Returns:
        A SourceBatch; one invalid document never hides its siblings.
    """
    model = SOURCE_MODELS[entity_type]
    batch = SourceBatch(entity_type)
    for document in documents:
        if isinstance(document, model):
            batch.records.append(document)
            continue
        try:
            batch.records.append(model.model_validate(document))
        except PydanticValidationError as e:
            error = e.errors()[0]
            location = ".".join(str(part) for part in error["loc"]) or "document"
            source_id = document.get("_id") if isinstance(document, Mapping) else None
            batch.rejected.append(
                RejectedDocument(
                    entity_type=entity_type,
                    source_id="" if source_id is None else str(source_id),
                    field=location,
                    reason=f"invalid {location}: {error['msg']}",
                )
            )
    return batch


# =============================================================================
# Run bookkeeping
# =============================================================================


@dataclass(frozen=True)
class IdentityMapping:
    """A recorded translation from a source identifier to a target identifier."""

    entity_type: EntityType
    source_id: str
    target_id: UUID


@dataclass(frozen=True)
class Migrated:
    """The record was written to the target store during this run."""

    entity_type: EntityType
    source_id: str
    target_id: UUID


@dataclass(frozen=True)
class AlreadyMigrated:
    """The record was mapped by a previous run and was skipped."""

    entity_type: EntityType
    source_id: str
    target_id: UUID


@dataclass(frozen=True)
class Failed:
    """
    The record could not be migrated.

    Attributes:
        entity_type: Entity type of the failed record.
        source_id: Source identifier of the failed record.
        reason: Human readable failure reason.
        error_type: Name of the exception class that caused the failure.
    """

    entity_type: EntityType
    source_id: str
    reason: str
    error_type: str

    def to_dict(self) -> dict[str, str]:
        return {
            "entity_type": self.entity_type.value,
            "source_id": self.source_id,
            "reason": self.reason,
            "error_type": self.error_type,
        }


RecordOutcome = Migrated | AlreadyMigrated | Failed


class RunState(Enum):
    """
    Lifecycle of one migration run.

    State machine transitions:
        NOT_STARTED -> IN_PROGRESS -> COMPLETED
                            |
                            +------> ABORTED

    COMPLETED means every record reached an outcome, failed records
    included. ABORTED means the process stopped early (structural error or
    cancellation) and some records have no outcome.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.ABORTED)


@dataclass
class MigrationSummary:
    """
    Accumulated outcome of one migration run.

    Owned exclusively by the orchestrator for the duration of a run.

    Attributes:
        run_id: Identifier of the run.
        state: Current run state.
        users_migrated / accounts_migrated / transactions_migrated:
            Records written during this run.
        users_failed / accounts_failed / transactions_failed:
            Records that reached a Failed outcome.
        users_already_migrated / ...: Records skipped because a previous
            run had already mapped them.
        failures: Failed outcomes in the order they were recorded.
        recomputation: Result of the aggregate recomputation stage.
        started_at: When the run started.
        finished_at: When the run reached a terminal state.
        abort_reason: Why the run was aborted, if it was.
    """

    run_id: UUID = field(default_factory=uuid4)
    state: RunState = RunState.NOT_STARTED
    users_migrated: int = 0
    users_failed: int = 0
    users_already_migrated: int = 0
    accounts_migrated: int = 0
    accounts_failed: int = 0
    accounts_already_migrated: int = 0
    transactions_migrated: int = 0
    transactions_failed: int = 0
    transactions_already_migrated: int = 0
    failures: list[Failed] = field(default_factory=list)
    recomputation: RecomputationResult | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    abort_reason: str | None = None

    def record(self, outcome: RecordOutcome) -> None:
        """Count a per-record outcome against its entity type."""
        prefix = outcome.entity_type.plural
        if isinstance(outcome, Migrated):
            name = f"{prefix}_migrated"
        elif isinstance(outcome, AlreadyMigrated):
            name = f"{prefix}_already_migrated"
        else:
            name = f"{prefix}_failed"
            self.failures.append(outcome)
        setattr(self, name, getattr(self, name) + 1)

    def migrated_count(self, entity_type: EntityType) -> int:
        return getattr(self, f"{entity_type.plural}_migrated")

    def failed_count(self, entity_type: EntityType) -> int:
        return getattr(self, f"{entity_type.plural}_failed")

    def already_migrated_count(self, entity_type: EntityType) -> int:
        return getattr(self, f"{entity_type.plural}_already_migrated")

    @property
    def total_failed(self) -> int:
        return self.users_failed + self.accounts_failed + self.transactions_failed

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for logging or display."""
        return {
            "run_id": str(self.run_id),
            "state": self.state.value,
            "users_migrated": self.users_migrated,
            "users_failed": self.users_failed,
            "users_already_migrated": self.users_already_migrated,
            "accounts_migrated": self.accounts_migrated,
            "accounts_failed": self.accounts_failed,
            "accounts_already_migrated": self.accounts_already_migrated,
            "transactions_migrated": self.transactions_migrated,
            "transactions_failed": self.transactions_failed,
            "transactions_already_migrated": self.transactions_already_migrated,
            "failures": [failure.to_dict() for failure in self.failures],
            "recomputation": self.recomputation.to_dict() if self.recomputation else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "abort_reason": self.abort_reason,
        }


@dataclass(frozen=True)
class StageProgress:
    """
    Progress snapshot emitted after a migration stage.

    Attributes:
        entity_type: Entity type handled by the stage.
        total: Number of source records read for the stage.
        migrated: Records written during this run.
        already_migrated: Records skipped because they were already mapped.
        failed: Records that failed.
        is_complete: False when the stage stopped before every record had
            an outcome.
    """

    entity_type: EntityType
    total: int
    migrated: int
    already_migrated: int
    failed: int
    is_complete: bool

    @property
    def processed(self) -> int:
        return self.migrated + self.already_migrated + self.failed

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 100.0
        return min(100.0, (self.processed / self.total) * 100)
