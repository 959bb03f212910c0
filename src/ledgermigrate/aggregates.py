"""
Aggregate recomputation.

Derives the per-account running transfer totals, which do not exist in the
source schema, from the migrated transaction history and writes them back
onto the migrated accounts.

A total is the sum of the account's completed outgoing transfers whose
timestamp falls in the reference day (for the daily total) or reference
calendar month (for the monthly total), up to the reference time. Periods
are computed in UTC; naive timestamps are taken to be UTC.

Recomputing from the same transactions and reference time always yields
the same totals.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledgermigrate.models import TRANSFER, TargetAccount, TargetTransaction, TransactionStatus
from ledgermigrate.observability import (
    ATTR_RECORD_COUNT,
    ATTR_REFERENCE_TIME,
    Tracer,
    create_tracer,
)
from ledgermigrate.stores.interface import TargetStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferTotals:
    """Outgoing transfer totals for one account."""

    daily: Decimal
    monthly: Decimal


@dataclass(frozen=True)
class LimitBreach:
    """
    A recomputed total that exceeds its transfer limit.

    Advisory only: historical transfers were accepted by the source system,
    so a breach is reported, never treated as a migration failure.

    Attributes:
        account_id: Target identifier of the account.
        account_number: Human-facing account number.
        period: "daily" or "monthly".
        total: Recomputed transfer total.
        limit: Limit the total was checked against.
    """

    account_id: UUID
    account_number: str
    period: str
    total: Decimal
    limit: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": str(self.account_id),
            "account_number": self.account_number,
            "period": self.period,
            "total": str(self.total),
            "limit": str(self.limit),
        }


@dataclass(frozen=True)
class RecomputationResult:
    """Outcome of one aggregate recomputation pass."""

    accounts_updated: int
    reference_time: datetime
    limit_breaches: list[LimitBreach] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accounts_updated": self.accounts_updated,
            "reference_time": self.reference_time.isoformat(),
            "limit_breaches": [breach.to_dict() for breach in self.limit_breaches],
        }


def as_utc(moment: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def compute_transfer_totals(
    account_id: UUID,
    transactions: Iterable[TargetTransaction],
    reference_time: datetime,
) -> TransferTotals:
    """
    Sum an account's outgoing transfers for the reference day and month.

    Args:
        account_id: Target identifier of the account.
        transactions: Migrated transactions; only completed transfers with
            this account as source are counted.
        reference_time: The instant the periods are anchored to.

    Returns:
        The daily and monthly totals.

    Example:
        >>> totals = compute_transfer_totals(account.id, transactions, run_started_at)
        >>> totals.daily <= totals.monthly
        True
    """
    reference = as_utc(reference_time)
    day_start = reference.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = day_start.replace(day=1)

    daily = Decimal("0")
    monthly = Decimal("0")
    for transaction in transactions:
        if (
            transaction.source_account_id != account_id
            or transaction.transaction_type != TRANSFER
            or transaction.status is not TransactionStatus.COMPLETED
        ):
            continue
        created_at = as_utc(transaction.created_at)
        if created_at > reference or created_at < month_start:
            continue
        monthly += transaction.amount
        if created_at >= day_start:
            daily += transaction.amount

    return TransferTotals(daily=daily, monthly=monthly)


def find_limit_breaches(account: TargetAccount, totals: TransferTotals) -> list[LimitBreach]:
    """Compare recomputed totals against the account's limits."""
    breaches = []
    for period, total, limit in (
        ("daily", totals.daily, account.daily_transfer_limit),
        ("monthly", totals.monthly, account.monthly_transfer_limit),
    ):
        if total > limit:
            breaches.append(
                LimitBreach(
                    account_id=account.id,
                    account_number=account.account_number,
                    period=period,
                    total=total,
                    limit=limit,
                )
            )
    return breaches


class AggregateRecomputer:
    """
    Recomputes and persists the transfer totals of every migrated account.

    Example:
        >>> recomputer = AggregateRecomputer(target)
        >>> result = await recomputer.recompute(reference_time)
        >>> result.accounts_updated
        5
    """

    def __init__(
        self,
        target: TargetStore,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._target = target
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def recompute(self, reference_time: datetime) -> RecomputationResult:
        """
        Recompute the totals of every account in the target store.

        Args:
            reference_time: The instant the day and month are anchored to.

        Returns:
            RecomputationResult with the number of accounts patched and any
            advisory limit breaches.

        Raises:
            StoreIOError: If the target store cannot be read or written.
        """
        with self._tracer.span(
            "ledgermigrate.aggregates.recompute",
            {ATTR_REFERENCE_TIME: as_utc(reference_time).isoformat()},
        ) as span:
            accounts = await self._target.list_accounts()
            transactions = await self._target.list_transactions()

            outgoing: dict[UUID, list[TargetTransaction]] = defaultdict(list)
            for transaction in transactions:
                if transaction.source_account_id is not None:
                    outgoing[transaction.source_account_id].append(transaction)

            breaches: list[LimitBreach] = []
            for account in accounts:
                totals = compute_transfer_totals(
                    account.id, outgoing.get(account.id, ()), reference_time
                )
                await self._target.update_account_aggregates(
                    account.id, totals.daily, totals.monthly
                )
                for breach in find_limit_breaches(account, totals):
                    logger.warning(
                        "Account %s exceeds its %s transfer limit: total %s > limit %s",
                        breach.account_number,
                        breach.period,
                        breach.total,
                        breach.limit,
                    )
                    breaches.append(breach)

            if span is not None:
                span.set_attribute(ATTR_RECORD_COUNT, len(accounts))
            logger.info(
                "Recomputed transfer totals for %d accounts (%d limit breaches)",
                len(accounts),
                len(breaches),
            )
            return RecomputationResult(
                accounts_updated=len(accounts),
                reference_time=as_utc(reference_time),
                limit_breaches=breaches,
            )
