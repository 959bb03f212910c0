"""
Demo Migration Example

This example walks through a complete ledger migration:
- Loading source documents into an in-memory source store
- Running the migration orchestrator into a SQLite target
- Reviewing the run summary and per-record failures
- Auditing the target against the source

Run with: python examples/demo_migration.py
"""

import asyncio
import logging
from datetime import UTC, datetime
from decimal import Decimal

from ledgermigrate import (
    ConsistencyAuditor,
    InMemorySourceStore,
    MigrationConfig,
    MigrationOrchestrator,
    SQLiteTargetStore,
    StageProgress,
)

PASSWORD_HASH = "$2b$10$abcdefghijklmnopqrstuvwxyz123456789"

# =============================================================================
# Step 1: Source documents
# =============================================================================
# Documents are shaped the way the document store holds them: string ids,
# camelCase keys, and optional fields that may be missing entirely.

USERS = [
    {
        "_id": "u-ana",
        "name": "Ana Costa",
        "email": "ana.costa@exemplo.com",
        "password": PASSWORD_HASH,
        "documentNumber": "12345678901",
    },
    {
        "_id": "u-bruno",
        "name": "Bruno Lima",
        "email": "bruno.lima@exemplo.com",
        "password": PASSWORD_HASH,
        "documentNumber": "98765432101",
    },
]

ACCOUNTS = [
    # No limits on file: the (type, currency) defaults apply.
    {
        "_id": "a-ana-usd",
        "userId": "u-ana",
        "accountNumber": "ACC10001",
        "currency": "usd",
        "balance": Decimal("1200.00"),
    },
    {
        "_id": "a-ana-usdt",
        "userId": "u-ana",
        "accountNumber": "ACC10002",
        "currency": "USDT",
        "balance": Decimal("50.00"),
    },
    {
        "_id": "a-bruno-usd",
        "userId": "u-bruno",
        "accountNumber": "ACC10003",
        "currency": "USD",
        "balance": Decimal("300.00"),
        "dailyTransferLimit": 1000,
        "monthlyTransferLimit": 8000,
    },
    # Rejected: the daily limit exceeds the monthly limit.
    {
        "_id": "a-bruno-eur",
        "userId": "u-bruno",
        "accountNumber": "ACC10004",
        "currency": "EUR",
        "dailyTransferLimit": 9000,
        "monthlyTransferLimit": 3000,
    },
]


def transfer(source_id, from_account, to_account, amount, created_at):
    return {
        "_id": source_id,
        "sourceAccountId": from_account,
        "destinationAccountId": to_account,
        "amount": Decimal(amount),
        "currency": "USD",
        "transactionType": "transfer",
        "createdAt": created_at,
    }


TRANSACTIONS = [
    transfer("t-1", "a-ana-usd", "a-bruno-usd", "250.00", datetime(2024, 5, 2, 10, 0, tzinfo=UTC)),
    transfer("t-2", "a-bruno-usd", "a-ana-usd", "40.00", datetime(2024, 5, 20, 8, 30, tzinfo=UTC)),
    # Rejected: the destination account never migrated.
    transfer("t-3", "a-ana-usd", "a-bruno-eur", "10.00", datetime(2024, 5, 20, 9, 0, tzinfo=UTC)),
]


def print_progress(progress: StageProgress) -> None:
    print(
        f"   {progress.entity_type.value:<12} {progress.migrated} migrated, "
        f"{progress.already_migrated} already migrated, {progress.failed} failed"
    )


async def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Ledger Migration Example")
    print("=" * 60)

    source = InMemorySourceStore(users=USERS, accounts=ACCOUNTS, transactions=TRANSACTIONS)
    config = MigrationConfig(
        max_concurrency=4,
        reference_time=datetime(2024, 5, 20, 18, 0, tzinfo=UTC),
    )

    async with SQLiteTargetStore(":memory:", enable_tracing=False) as target:
        await target.initialize()

        # =====================================================================
        # Step 2: Migrate
        # =====================================================================
        print("\n1. Migrating (users, then accounts, then transactions):")
        orchestrator = MigrationOrchestrator(
            source,
            target,
            config=config,
            progress_callback=print_progress,
            enable_tracing=False,
        )
        summary = await orchestrator.run_migration()

        print(f"\n2. Run {summary.run_id} finished in state {summary.state.value}")
        for failure in summary.failures:
            print(f"   {failure.entity_type.value} {failure.source_id}: {failure.reason}")

        # =====================================================================
        # Step 3: Derived totals
        # =====================================================================
        print("\n3. Recomputed transfer totals:")
        for account in await target.list_accounts():
            print(
                f"   {account.account_number} {account.currency:<4} "
                f"daily {account.daily_transfer_total}/{account.daily_transfer_limit}, "
                f"monthly {account.monthly_transfer_total}/{account.monthly_transfer_limit}"
            )

        # =====================================================================
        # Step 4: Audit
        # =====================================================================
        print("\n4. Consistency audit:")
        report = await ConsistencyAuditor(source, target, enable_tracing=False).run_audit()
        for entity_type, entity_report in report.per_entity_type.items():
            print(
                f"   {entity_type.value:<12} coverage {entity_report.coverage_percent:5.1f}% "
                f"missing {entity_report.missing_source_ids}"
            )
        print(f"   Balance checks: {report.balance.valid_percent:.1f}% valid")
        print(f"   Overall score: {report.overall_score:.1f} ({report.grade.value})")

        # =====================================================================
        # Step 5: Rerun
        # =====================================================================
        print("\n5. Rerunning against the same target:")
        rerun = await MigrationOrchestrator(
            source, target, config=config, enable_tracing=False
        ).run_migration()
        print(
            f"   Already migrated: {rerun.users_already_migrated} users, "
            f"{rerun.accounts_already_migrated} accounts, "
            f"{rerun.transactions_already_migrated} transactions"
        )

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
