"""
ConsistencyAuditor - Post-migration parity and balance checks.

The auditor reads both stores directly and never trusts the migration
summary. Records are paired through the target rows' ``source_id``.

For each entity type it reports:
    - valid: present in both stores and field-equivalent
    - invalid: present in both stores but different on a compared field
    - missing: present in the source, absent from the target (documents
      that fail to parse count here)
so that ``valid + invalid + missing == source_total`` always holds.

A separate balance reconciliation pass compares every paired account's
stored balance against an expected balance. Its findings are advisory.

Usage:
    >>> auditor = ConsistencyAuditor(source, target)
    >>> report = await auditor.run_audit()
    >>> report.per_entity_type[EntityType.USER].coverage_percent
    100.0
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from ledgermigrate.config import AuditConfig, BalanceReconciliationMode
from ledgermigrate.models import (
    EntityType,
    SourceAccount,
    SourceBatch,
    SourceTransaction,
    SourceUser,
    TargetAccount,
    TargetRecord,
    TargetTransaction,
    TargetUser,
    TransactionStatus,
)
from ledgermigrate.observability import (
    ATTR_BALANCE_MODE,
    ATTR_COVERAGE_PERCENT,
    ATTR_ENTITY_TYPE,
    ATTR_RECORD_COUNT,
    Tracer,
    create_tracer,
)
from ledgermigrate.stores.interface import SourceStore, TargetStore

logger = logging.getLogger(__name__)

TargetT = TypeVar("TargetT", bound=TargetRecord)

# Balances closer than this are considered equal.
BALANCE_TOLERANCE = Decimal("0.01")


# =============================================================================
# Reports
# =============================================================================


@dataclass(frozen=True)
class ValidationReport:
    """
    Parity of one entity type between the source and target stores.

    Attributes:
        entity_type: The audited entity type.
        source_total: Number of source records.
        valid_count: Paired and field-equivalent.
        invalid_count: Paired but different on at least one compared field.
        missing_count: In the source, not in the target.
        mismatches: Source id -> names of the fields that differ.
        missing_source_ids: Source ids with no target counterpart.
    """

    entity_type: EntityType
    source_total: int
    valid_count: int
    invalid_count: int
    missing_count: int
    mismatches: dict[str, list[str]] = field(default_factory=dict)
    missing_source_ids: list[str] = field(default_factory=list)

    @property
    def coverage_percent(self) -> float:
        """Share of source records with a valid counterpart (0.0 when empty)."""
        if self.source_total == 0:
            return 0.0
        return self.valid_count / self.source_total * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "source_total": self.source_total,
            "valid_count": self.valid_count,
            "invalid_count": self.invalid_count,
            "missing_count": self.missing_count,
            "coverage_percent": round(self.coverage_percent, 2),
            "mismatches": self.mismatches,
            "missing_source_ids": self.missing_source_ids,
        }


@dataclass(frozen=True)
class BalanceFinding:
    """An account whose stored balance diverges from its expected balance."""

    account_source_id: str
    account_number: str
    expected: Decimal
    actual: Decimal

    @property
    def difference(self) -> Decimal:
        return self.actual - self.expected

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_source_id": self.account_source_id,
            "account_number": self.account_number,
            "expected": str(self.expected),
            "actual": str(self.actual),
            "difference": str(self.difference),
        }


@dataclass(frozen=True)
class BalanceReport:
    """
    Result of the balance reconciliation pass.

    Only accounts present in both stores are checked.
    """

    mode: BalanceReconciliationMode
    checked_count: int
    valid_count: int
    invalid_count: int
    findings: list[BalanceFinding] = field(default_factory=list)

    @property
    def valid_percent(self) -> float:
        if self.checked_count == 0:
            return 0.0
        return self.valid_count / self.checked_count * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "checked_count": self.checked_count,
            "valid_count": self.valid_count,
            "invalid_count": self.invalid_count,
            "valid_percent": round(self.valid_percent, 2),
            "findings": [finding.to_dict() for finding in self.findings],
        }


class MigrationGrade(Enum):
    """Overall verdict derived from the audit score."""

    EXCELLENT = "excellent"
    VERY_GOOD = "very_good"
    GOOD = "good"
    FAIR = "fair"
    UNSATISFACTORY = "unsatisfactory"

    @classmethod
    def from_score(cls, score: float) -> MigrationGrade:
        if score >= 95:
            return cls.EXCELLENT
        if score >= 90:
            return cls.VERY_GOOD
        if score >= 80:
            return cls.GOOD
        if score >= 70:
            return cls.FAIR
        return cls.UNSATISFACTORY


@dataclass(frozen=True)
class AuditReport:
    """
    Complete audit result.

    Attributes:
        per_entity_type: One ValidationReport per entity type.
        balance: Balance reconciliation result.
    """

    per_entity_type: dict[EntityType, ValidationReport]
    balance: BalanceReport

    @property
    def balance_findings(self) -> list[BalanceFinding]:
        return self.balance.findings

    @property
    def overall_score(self) -> float:
        """Mean of the three coverages and the balance validity percent."""
        scores = [report.coverage_percent for report in self.per_entity_type.values()]
        scores.append(self.balance.valid_percent)
        return sum(scores) / len(scores)

    @property
    def grade(self) -> MigrationGrade:
        return MigrationGrade.from_score(self.overall_score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "per_entity_type": {
                entity_type.value: report.to_dict()
                for entity_type, report in self.per_entity_type.items()
            },
            "balance": self.balance.to_dict(),
            "overall_score": round(self.overall_score, 2),
            "grade": self.grade.value,
        }


# =============================================================================
# Field equivalence
# =============================================================================


def user_mismatches(source: SourceUser, target: TargetUser) -> list[str]:
    """Names of the compared user fields that differ."""
    return [
        name
        for name, expected, actual in (
            ("name", source.name, target.name),
            ("email", source.email, target.email),
            ("role", source.role, target.role),
            ("status", source.status, target.status),
        )
        if expected != actual
    ]


def account_mismatches(
    source: SourceAccount,
    target: TargetAccount,
    owner_id: UUID | None,
) -> list[str]:
    """
    Names of the compared account fields that differ.

    Args:
        source: The source account.
        target: The migrated account.
        owner_id: Target id of the user migrated from the source owner, or
            None when the owner has no target counterpart.
    """
    return [
        name
        for name, expected, actual in (
            ("accountNumber", source.account_number, target.account_number),
            ("currency", source.currency, target.currency),
            ("balance", source.balance, target.balance),
            ("status", source.status, target.status),
            ("userId", owner_id, target.user_id),
        )
        if expected != actual
    ]


def transaction_mismatches(
    source: SourceTransaction,
    target: TargetTransaction,
    account_numbers: Mapping[str, str],
) -> list[str]:
    """
    Names of the compared transaction fields that differ.

    Args:
        source: The source transaction.
        target: The migrated transaction.
        account_numbers: Source account id -> account number, read from
            the source store.
    """

    def number_of(account_id: str | None) -> str | None:
        return account_numbers.get(account_id) if account_id is not None else None

    return [
        name
        for name, expected, actual in (
            ("amount", source.amount, target.amount),
            ("currency", source.currency, target.currency),
            ("transactionType", source.transaction_type, target.transaction_type),
            ("status", source.status, target.status),
            (
                "sourceAccountNumber",
                number_of(source.source_account_id),
                target.source_account_number,
            ),
            (
                "destinationAccountNumber",
                number_of(source.destination_account_id),
                target.destination_account_number,
            ),
        )
        if expected != actual
    ]


def ledger_balance(account_id: UUID, transactions: Sequence[TargetTransaction]) -> Decimal:
    """
    Balance implied by the migrated history, from a zero opening balance.

    Completed transactions crediting the account add, completed
    transactions debiting it subtract.
    """
    balance = Decimal("0")
    for transaction in transactions:
        if transaction.status is not TransactionStatus.COMPLETED:
            continue
        if transaction.destination_account_id == account_id:
            balance += transaction.amount
        if transaction.source_account_id == account_id:
            balance -= transaction.amount
    return balance


# =============================================================================
# Auditor
# =============================================================================


class ConsistencyAuditor:
    """
    Read-only, post-migration parity checker.

    The three entity audits and the balance pass are independent and run
    concurrently.

    Example:
        >>> auditor = ConsistencyAuditor(
        ...     source,
        ...     target,
        ...     config=AuditConfig(balance_mode=BalanceReconciliationMode.LEDGER),
        ... )
        >>> report = await auditor.run_audit()
        >>> report.grade
        <MigrationGrade.EXCELLENT: 'excellent'>
    """

    def __init__(
        self,
        source: SourceStore,
        target: TargetStore,
        *,
        config: AuditConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._source = source
        self._target = target
        self._config = config or AuditConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def run_audit(self) -> AuditReport:
        """
        Audit every entity type and reconcile balances.

        Returns:
            AuditReport with per entity type parity and balance findings.

        Raises:
            StoreIOError: If either store cannot be read.
        """
        with self._tracer.span(
            "ledgermigrate.auditor.run_audit",
            {ATTR_BALANCE_MODE: self._config.balance_mode.value},
        ):
            users, accounts, transactions, balance = await asyncio.gather(
                self.audit_users(),
                self.audit_accounts(),
                self.audit_transactions(),
                self.reconcile_balances(),
            )
            report = AuditReport(
                per_entity_type={
                    EntityType.USER: users,
                    EntityType.ACCOUNT: accounts,
                    EntityType.TRANSACTION: transactions,
                },
                balance=balance,
            )
            logger.info(
                "Audit finished: users %.2f%%, accounts %.2f%%, transactions %.2f%%, "
                "balances %.2f%% -> score %.2f (%s)",
                users.coverage_percent,
                accounts.coverage_percent,
                transactions.coverage_percent,
                balance.valid_percent,
                report.overall_score,
                report.grade.value,
            )
            return report

    async def audit_users(self) -> ValidationReport:
        batch = await self._source.load(EntityType.USER)
        targets = await self._target.list_users()
        return self._audit(batch, targets, user_mismatches)

    async def audit_accounts(self) -> ValidationReport:
        batch = await self._source.load(EntityType.ACCOUNT)
        targets = await self._target.list_accounts()
        target_users = await self._target.list_users()
        user_ids = {user.source_id: user.id for user in target_users}

        def compare(source: SourceAccount, target: TargetAccount) -> list[str]:
            return account_mismatches(source, target, user_ids.get(source.user_id))

        return self._audit(batch, targets, compare)

    async def audit_transactions(self) -> ValidationReport:
        batch = await self._source.load(EntityType.TRANSACTION)
        targets = await self._target.list_transactions()
        source_accounts = await self._source.list_accounts()
        account_numbers = {
            account.source_id: account.account_number for account in source_accounts
        }

        def compare(source: SourceTransaction, target: TargetTransaction) -> list[str]:
            return transaction_mismatches(source, target, account_numbers)

        return self._audit(batch, targets, compare)

    async def reconcile_balances(self) -> BalanceReport:
        """
        Compare each migrated account's balance with its expected balance.

        In SNAPSHOT mode the expected balance is the source balance. In
        LEDGER mode it is rebuilt from the migrated transactions.
        """
        mode = self._config.balance_mode
        with self._tracer.span(
            "ledgermigrate.auditor.reconcile_balances",
            {ATTR_BALANCE_MODE: mode.value},
        ):
            sources = await self._source.list_accounts()
            targets = {account.source_id: account for account in await self._target.list_accounts()}
            transactions: list[TargetTransaction] = []
            if mode is BalanceReconciliationMode.LEDGER:
                transactions = await self._target.list_transactions()

            checked = 0
            findings: list[BalanceFinding] = []
            for source in sources:
                target = targets.get(source.source_id)
                if target is None:
                    continue
                checked += 1
                if mode is BalanceReconciliationMode.LEDGER:
                    expected = ledger_balance(target.id, transactions)
                else:
                    expected = source.balance
                if abs(target.balance - expected) >= BALANCE_TOLERANCE:
                    logger.warning(
                        "Balance mismatch for account %s: expected %s, stored %s",
                        target.account_number,
                        expected,
                        target.balance,
                    )
                    findings.append(
                        BalanceFinding(
                            account_source_id=source.source_id,
                            account_number=target.account_number,
                            expected=expected,
                            actual=target.balance,
                        )
                    )

            return BalanceReport(
                mode=mode,
                checked_count=checked,
                valid_count=checked - len(findings),
                invalid_count=len(findings),
                findings=findings,
            )

    def _audit(
        self,
        batch: SourceBatch,
        targets: Sequence[TargetT],
        compare: Callable[[Any, TargetT], list[str]],
    ) -> ValidationReport:
        entity_type = batch.entity_type
        sources = batch.records
        with self._tracer.span(
            f"ledgermigrate.auditor.audit_{entity_type.plural}",
            {ATTR_ENTITY_TYPE: entity_type.value, ATTR_RECORD_COUNT: batch.total},
        ) as span:
            by_source_id = {target.source_id: target for target in targets}
            valid = 0
            mismatches: dict[str, list[str]] = {}
            # Unparseable documents never reach the target.
            missing = [rejected.source_id for rejected in batch.rejected]
            for source in sources:
                target = by_source_id.get(source.source_id)
                if target is None:
                    missing.append(source.source_id)
                    continue
                differing = compare(source, target)
                if differing:
                    mismatches[source.source_id] = differing
                else:
                    valid += 1

            report = ValidationReport(
                entity_type=entity_type,
                source_total=batch.total,
                valid_count=valid,
                invalid_count=len(mismatches),
                missing_count=len(missing),
                mismatches=mismatches,
                missing_source_ids=missing,
            )
            if span is not None:
                span.set_attribute(ATTR_COVERAGE_PERCENT, report.coverage_percent)
            for source_id, fields in mismatches.items():
                logger.warning(
                    "%s %s differs on: %s", entity_type.value, source_id, ", ".join(fields)
                )
            logger.info(
                "Audited %s: %d/%d valid, %d invalid, %d missing (%.2f%%)",
                entity_type.plural,
                valid,
                batch.total,
                len(mismatches),
                len(missing),
                report.coverage_percent,
            )
            return report
