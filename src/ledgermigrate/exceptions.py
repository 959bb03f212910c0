"""
Exceptions raised by the ledgermigrate engine.

Exception Hierarchy:
    LedgerMigrateError (base)
    +-- RecordError                  (per-record, captured in the summary)
    |   +-- ValidationError
    |   +-- MissingReferenceError
    +-- IdentityMappingError         (structural, aborts the run)
    |   +-- MissingMappingError
    |   +-- DuplicateMappingError
    +-- StoreIOError                 (structural, aborts the run)
    +-- MigrationAbortedError        (raised by the orchestrator)

Every class carries an ErrorSeverity (used to pick a log level) and an
ErrorRecoverability (used to decide whether an error is captured against a
single record or stops the run).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from ledgermigrate.models import EntityType, MigrationSummary


class ErrorSeverity(Enum):
    """
    Severity level of migration errors.

    Attributes:
        ERROR: Failure that stops the run or needs operator attention.
        WARNING: Bad data in a single record; the run continues.
    """

    ERROR = "error"
    WARNING = "warning"

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        return logging.ERROR if self is ErrorSeverity.ERROR else logging.WARNING


class ErrorRecoverability(Enum):
    """
    Recoverability classification for migration errors.

    Attributes:
        RECORD: The error belongs to one source record. It is recorded as a
            failed outcome and sibling records keep migrating.
        FATAL: The error means the process itself is broken (store
            unreachable, barrier violated, double migration). The current
            stage and the run stop.
    """

    RECORD = "record"
    FATAL = "fatal"

    @property
    def should_abort(self) -> bool:
        """True only for FATAL errors."""
        return self is ErrorRecoverability.FATAL


class LedgerMigrateError(Exception):
    """Base exception for the ledgermigrate package."""

    severity: ClassVar[ErrorSeverity] = ErrorSeverity.ERROR
    recoverability: ClassVar[ErrorRecoverability] = ErrorRecoverability.FATAL


# =============================================================================
# Per-record errors
# =============================================================================


class RecordError(LedgerMigrateError):
    """Base class for errors scoped to a single source record."""

    severity: ClassVar[ErrorSeverity] = ErrorSeverity.WARNING
    recoverability: ClassVar[ErrorRecoverability] = ErrorRecoverability.RECORD


class ValidationError(RecordError):
    """
    Raised when a payload violates an account creation, update or limit rule.

    Reported synchronously to the caller and never retried. During
    migration it fails the offending record only.

    Attributes:
        field: Name of the first field that violated a rule.
        message: Human readable description of the violation.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class MissingReferenceError(RecordError):
    """
    Raised when a record references a parent that was never migrated.

    Attributes:
        entity_type: Entity type of the referenced parent.
        source_id: Source identifier of the missing parent.
        field: Name of the referencing field on the child record.
    """

    def __init__(self, entity_type: EntityType, source_id: str, field: str) -> None:
        self.entity_type = entity_type
        self.source_id = source_id
        self.field = field
        super().__init__(
            f"{field} references {entity_type.value} {source_id!r}, "
            f"which has no migrated counterpart"
        )


# =============================================================================
# Structural errors
# =============================================================================


class IdentityMappingError(LedgerMigrateError):
    """Raised when the identity mapper contract is violated."""

    pass


class MissingMappingError(IdentityMappingError):
    """
    Raised when resolving an identity that was never registered.

    Reaching this from a migrator means a stage started before the stage it
    depends on passed its barrier.
    """

    def __init__(self, entity_type: EntityType, source_id: str, reason: str | None = None) -> None:
        self.entity_type = entity_type
        self.source_id = source_id
        detail = f": {reason}" if reason else ""
        super().__init__(f"No identity mapping for {entity_type.value} {source_id!r}{detail}")


class DuplicateMappingError(IdentityMappingError):
    """Raised when a source identity is registered a second time."""

    def __init__(self, entity_type: EntityType, source_id: str, existing_target_id: Any) -> None:
        self.entity_type = entity_type
        self.source_id = source_id
        self.existing_target_id = existing_target_id
        super().__init__(
            f"{entity_type.value} {source_id!r} is already mapped to {existing_target_id}"
        )


class StoreIOError(LedgerMigrateError):
    """
    Raised when the source or target store is unreachable or rejects a write.

    Attributes:
        store: Short name of the failing store (e.g. "sqlite", "mongodb").
        operation: The operation that failed (e.g. "insert_account").
    """

    def __init__(self, store: str, operation: str, message: str) -> None:
        self.store = store
        self.operation = operation
        super().__init__(f"{store} {operation} failed: {message}")


class MigrationAbortedError(LedgerMigrateError):
    """
    Raised by the orchestrator when a structural error stops a run.

    The partial summary is attached so operators can see how far the run
    got; the original error is available as ``__cause__``.
    """

    def __init__(self, message: str, summary: MigrationSummary) -> None:
        self.summary = summary
        super().__init__(message)


def is_record_level(error: BaseException) -> bool:
    """
    Check whether an error should be captured against a single record.

    Args:
        error: The exception raised while migrating one record.

    Returns:
        True for ledgermigrate errors classified as RECORD.
    """
    return (
        isinstance(error, LedgerMigrateError)
        and error.recoverability is ErrorRecoverability.RECORD
    )


__all__ = [
    "ErrorSeverity",
    "ErrorRecoverability",
    "LedgerMigrateError",
    "RecordError",
    "ValidationError",
    "MissingReferenceError",
    "IdentityMappingError",
    "MissingMappingError",
    "DuplicateMappingError",
    "StoreIOError",
    "MigrationAbortedError",
    "is_record_level",
]
