"""
ledgermigrate - Migration and reconciliation engine for banking ledgers.

This library provides:
- Identity mapping between document-store and relational identifiers
- Transfer-limit invariant validation shared with live account handlers
- Dependency-ordered, concurrent migration of users, accounts and transactions
- Recomputation of derived per-account transfer totals
- A post-migration consistency audit with balance reconciliation
- Source stores (in-memory, MongoDB) and target stores (in-memory, SQLite, PostgreSQL)
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ledgermigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from ledgermigrate.aggregates import (
    AggregateRecomputer,
    LimitBreach,
    RecomputationResult,
    TransferTotals,
    compute_transfer_totals,
)
from ledgermigrate.auditor import (
    AuditReport,
    BalanceFinding,
    BalanceReport,
    ConsistencyAuditor,
    MigrationGrade,
    ValidationReport,
)
from ledgermigrate.config import (
    DEFAULT_SUPPORTED_CURRENCIES,
    AuditConfig,
    BalanceReconciliationMode,
    MigrationConfig,
)
from ledgermigrate.exceptions import (
    DuplicateMappingError,
    ErrorRecoverability,
    ErrorSeverity,
    IdentityMappingError,
    LedgerMigrateError,
    MigrationAbortedError,
    MissingMappingError,
    MissingReferenceError,
    RecordError,
    StoreIOError,
    ValidationError,
    is_record_level,
)
from ledgermigrate.identity import IdentityMapper
from ledgermigrate.limits import (
    DEFAULT_LIMIT_POLICY,
    TransferLimits,
    apply_default_limits,
    default_limits_for,
    validate_account_creation,
    validate_account_update,
    validate_limits,
)
from ledgermigrate.migrators import (
    AccountMigrator,
    EntityMigrator,
    TransactionMigrator,
    UserMigrator,
)
from ledgermigrate.models import (
    AccountStatus,
    AccountType,
    AlreadyMigrated,
    EntityType,
    Failed,
    IdentityMapping,
    Migrated,
    MigrationSummary,
    RecordOutcome,
    RunState,
    SourceAccount,
    SourceTransaction,
    SourceUser,
    StageProgress,
    TargetAccount,
    TargetTransaction,
    TargetUser,
    TransactionStatus,
    UserRole,
)
from ledgermigrate.orchestrator import MigrationOrchestrator
from ledgermigrate.stores import (
    InMemorySourceStore,
    InMemoryTargetStore,
    MongoSourceStore,
    PostgreSQLTargetStore,
    SourceStore,
    SQLiteTargetStore,
    TargetStore,
)

__all__ = [
    "__version__",
    # Identity
    "IdentityMapper",
    "IdentityMapping",
    # Limits
    "DEFAULT_LIMIT_POLICY",
    "TransferLimits",
    "apply_default_limits",
    "default_limits_for",
    "validate_account_creation",
    "validate_account_update",
    "validate_limits",
    # Models
    "AccountStatus",
    "AccountType",
    "EntityType",
    "SourceAccount",
    "SourceTransaction",
    "SourceUser",
    "TargetAccount",
    "TargetTransaction",
    "TargetUser",
    "TransactionStatus",
    "UserRole",
    # Run bookkeeping
    "AlreadyMigrated",
    "Failed",
    "Migrated",
    "MigrationSummary",
    "RecordOutcome",
    "RunState",
    "StageProgress",
    # Migration
    "AccountMigrator",
    "EntityMigrator",
    "TransactionMigrator",
    "UserMigrator",
    "MigrationOrchestrator",
    # Aggregates
    "AggregateRecomputer",
    "LimitBreach",
    "RecomputationResult",
    "TransferTotals",
    "compute_transfer_totals",
    # Audit
    "AuditReport",
    "BalanceFinding",
    "BalanceReport",
    "ConsistencyAuditor",
    "MigrationGrade",
    "ValidationReport",
    # Configuration
    "DEFAULT_SUPPORTED_CURRENCIES",
    "AuditConfig",
    "BalanceReconciliationMode",
    "MigrationConfig",
    # Exceptions
    "DuplicateMappingError",
    "ErrorRecoverability",
    "ErrorSeverity",
    "IdentityMappingError",
    "LedgerMigrateError",
    "MigrationAbortedError",
    "MissingMappingError",
    "MissingReferenceError",
    "RecordError",
    "StoreIOError",
    "ValidationError",
    "is_record_level",
    # Stores
    "InMemorySourceStore",
    "InMemoryTargetStore",
    "MongoSourceStore",
    "PostgreSQLTargetStore",
    "SQLiteTargetStore",
    "SourceStore",
    "TargetStore",
]
