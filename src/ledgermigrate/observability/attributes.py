"""
Standard span attributes for ledgermigrate.

Attribute constants used across the migration engine for consistent span
naming. Database attributes follow OpenTelemetry semantic conventions.

Example:
    >>> from ledgermigrate.observability.attributes import ATTR_ENTITY_TYPE
    >>>
    >>> with tracer.span(
    ...     "ledgermigrate.migrator.migrate",
    ...     {ATTR_ENTITY_TYPE: "account", ATTR_SOURCE_ID: record.source_id},
    ... ):
    ...     pass
"""

# =============================================================================
# Entity Attributes
# =============================================================================

ATTR_ENTITY_TYPE = "ledgermigrate.entity.type"
"""Entity type being processed ('user', 'account', 'transaction')."""

ATTR_SOURCE_ID = "ledgermigrate.entity.source_id"
"""Identifier of the record in the source store."""

ATTR_TARGET_ID = "ledgermigrate.entity.target_id"
"""Identifier of the record in the target store (UUID string)."""

ATTR_RECORD_COUNT = "ledgermigrate.record.count"
"""Number of records handled by an operation (integer)."""

# =============================================================================
# Run Attributes
# =============================================================================

ATTR_RUN_ID = "ledgermigrate.run.id"
"""Identifier of a migration run (UUID string)."""

ATTR_RUN_STATE = "ledgermigrate.run.state"
"""Run state at the end of an operation."""

ATTR_MAX_CONCURRENCY = "ledgermigrate.run.max_concurrency"
"""Number of concurrent workers per stage (integer)."""

ATTR_REFERENCE_TIME = "ledgermigrate.run.reference_time"
"""Reference time used for transfer-total windows (ISO 8601)."""

# =============================================================================
# Audit Attributes
# =============================================================================

ATTR_BALANCE_MODE = "ledgermigrate.audit.balance_mode"
"""Balance reconciliation mode ('snapshot' or 'ledger')."""

ATTR_COVERAGE_PERCENT = "ledgermigrate.audit.coverage_percent"
"""Coverage percentage computed for an entity type (float)."""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite', 'postgresql', 'mongodb')."""

ATTR_DB_NAME = "db.name"
"""Database name or file path."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation (e.g., 'INSERT', 'SELECT', 'find')."""
