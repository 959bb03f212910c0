"""
Configuration classes for migration and audit runs.

This module provides:
- MigrationConfig: Settings for one orchestrator run
- AuditConfig: Settings for one consistency audit
- BalanceReconciliationMode: How the auditor derives expected balances
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

DEFAULT_SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"USD", "EUR", "USDT"})


class BalanceReconciliationMode(Enum):
    """
    How the auditor derives the expected balance of a migrated account.

    Attributes:
        SNAPSHOT: Expected balance is the balance recorded in the source
            store. The source balance is authoritative and the check proves
            it survived the copy.
        LEDGER: Expected balance is rebuilt from the migrated transaction
            history (completed incoming minus completed outgoing transfers,
            from a zero opening balance).
    """

    SNAPSHOT = "snapshot"
    LEDGER = "ledger"


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for a migration run.

    Attributes:
        max_concurrency: Number of worker tasks migrating records of the
            same entity type concurrently.
        reference_time: Instant the daily/monthly transfer totals are
            computed against. Defaults to the moment the run starts.
        supported_currencies: Currencies an account may be migrated with.

    Example:
        >>> config = MigrationConfig(
        ...     max_concurrency=4,
        ...     reference_time=datetime(2023, 3, 20, tzinfo=UTC),
        ... )
    """

    max_concurrency: int = 8
    reference_time: datetime | None = None
    supported_currencies: frozenset[str] = field(default=DEFAULT_SUPPORTED_CURRENCIES)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_concurrency < 1:
            raise ValueError(
                f"max_concurrency must be positive, got {self.max_concurrency}. "
                "Use 1 to migrate records strictly one at a time."
            )
        if not self.supported_currencies:
            raise ValueError("supported_currencies must name at least one currency")


@dataclass(frozen=True)
class AuditConfig:
    """
    Configuration for a consistency audit.

    Attributes:
        balance_mode: How expected balances are derived for the balance
            reconciliation pass.
    """

    balance_mode: BalanceReconciliationMode = BalanceReconciliationMode.SNAPSHOT
