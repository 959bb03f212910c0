"""
Unit tests for MigrationOrchestrator.

Tests cover:
- Stage ordering and barriers
- Run state transitions
- Progress reporting
- Cancellation between records
- Abort on structural errors with the partial summary attached
- Restoring mappings persisted by a previous run
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

from ledgermigrate.config import MigrationConfig
from ledgermigrate.exceptions import MigrationAbortedError, StoreIOError
from ledgermigrate.models import EntityType, RunState, StageProgress, TargetUser
from ledgermigrate.observability import MockTracer
from ledgermigrate.orchestrator import MigrationOrchestrator
from ledgermigrate.stores.in_memory import InMemorySourceStore, InMemoryTargetStore
from tests.fixtures import REFERENCE_TIME, demo_accounts, demo_transactions, demo_users


class RecordingTargetStore(InMemoryTargetStore):
    """In-memory target that records the order of inserted entity types."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.calls: list[str] = []

    async def insert_user(self, user: TargetUser):
        self.calls.append("user")
        await asyncio.sleep(0)
        return await super().insert_user(user)

    async def insert_account(self, account):
        self.calls.append("account")
        await asyncio.sleep(0)
        return await super().insert_account(account)

    async def insert_transaction(self, transaction):
        self.calls.append("transaction")
        await asyncio.sleep(0)
        return await super().insert_transaction(transaction)


class TestRunMigration:
    """Tests for a successful run."""

    @pytest.mark.asyncio
    async def test_completes_and_counts(self, orchestrator: MigrationOrchestrator) -> None:
        summary = await orchestrator.run_migration()

        assert summary.state is RunState.COMPLETED
        assert orchestrator.state is RunState.COMPLETED
        assert (summary.users_migrated, summary.accounts_migrated) == (3, 5)
        assert summary.transactions_migrated == 3
        assert summary.total_failed == 0
        assert summary.started_at is not None
        assert summary.finished_at is not None
        assert summary.finished_at >= summary.started_at
        assert summary.abort_reason is None

    @pytest.mark.asyncio
    async def test_stages_run_in_dependency_order(
        self, demo_source: InMemorySourceStore, migration_config: MigrationConfig
    ) -> None:
        target = RecordingTargetStore(enable_tracing=False)
        orchestrator = MigrationOrchestrator(
            demo_source, target, config=migration_config, enable_tracing=False
        )

        await orchestrator.run_migration()

        assert target.calls == ["user"] * 3 + ["account"] * 5 + ["transaction"] * 3

    @pytest.mark.asyncio
    async def test_seals_every_stage(self, orchestrator: MigrationOrchestrator) -> None:
        await orchestrator.run_migration()

        assert all(orchestrator.mapper.is_sealed(entity_type) for entity_type in EntityType)
        assert len(orchestrator.mapper) == 11

    @pytest.mark.asyncio
    async def test_recomputes_aggregates(
        self, orchestrator: MigrationOrchestrator, target: InMemoryTargetStore
    ) -> None:
        summary = await orchestrator.run_migration()

        assert summary.recomputation is not None
        assert summary.recomputation.accounts_updated == 5
        assert summary.recomputation.reference_time == REFERENCE_TIME
        acc4 = await target.get_account_by_source_id("mongo-acc-4")
        assert acc4 is not None
        assert acc4.daily_transfer_total == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_empty_source_completes(self, target: InMemoryTargetStore) -> None:
        orchestrator = MigrationOrchestrator(
            InMemorySourceStore(), target, enable_tracing=False
        )

        summary = await orchestrator.run_migration()

        assert summary.state is RunState.COMPLETED
        assert summary.recomputation is not None
        assert summary.recomputation.accounts_updated == 0

    @pytest.mark.asyncio
    async def test_malformed_document_fails_only_itself(
        self, target: InMemoryTargetStore, migration_config: MigrationConfig
    ) -> None:
        transactions = demo_transactions()
        del transactions[1]["amount"]
        source = InMemorySourceStore(demo_users(), demo_accounts(), transactions)
        progress: list[StageProgress] = []
        orchestrator = MigrationOrchestrator(
            source,
            target,
            config=migration_config,
            progress_callback=progress.append,
            enable_tracing=False,
        )

        summary = await orchestrator.run_migration()

        assert summary.state is RunState.COMPLETED
        assert summary.transactions_migrated == 2
        assert summary.transactions_failed == 1
        failure = summary.failures[0]
        assert failure.source_id == "mongo-tx-2"
        assert failure.error_type == "ValidationError"
        assert "amount" in failure.reason
        assert progress[-1].total == 3
        assert progress[-1].is_complete

    @pytest.mark.asyncio
    async def test_cannot_run_twice(self, orchestrator: MigrationOrchestrator) -> None:
        await orchestrator.run_migration()

        with pytest.raises(RuntimeError, match="already started"):
            await orchestrator.run_migration()

    @pytest.mark.asyncio
    async def test_record_failures_do_not_abort(
        self, target: InMemoryTargetStore, migration_config: MigrationConfig
    ) -> None:
        accounts = demo_accounts()
        accounts[0]["dailyTransferLimit"] = "5000"
        accounts[0]["monthlyTransferLimit"] = "3000"
        source = InMemorySourceStore(demo_users(), accounts, demo_transactions())
        orchestrator = MigrationOrchestrator(
            source, target, config=migration_config, enable_tracing=False
        )

        summary = await orchestrator.run_migration()

        assert summary.state is RunState.COMPLETED
        assert summary.accounts_failed == 1
        # tx-1 and tx-3 both touch mongo-acc-1
        assert summary.transactions_failed == 2
        assert summary.transactions_migrated == 1
        assert {f.error_type for f in summary.failures} == {
            "ValidationError",
            "MissingReferenceError",
        }


class TestProgress:
    """Tests for the progress callback."""

    @pytest.mark.asyncio
    async def test_sync_callback_per_stage(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        migration_config: MigrationConfig,
    ) -> None:
        reports: list[StageProgress] = []
        orchestrator = MigrationOrchestrator(
            demo_source,
            target,
            config=migration_config,
            progress_callback=reports.append,
            enable_tracing=False,
        )

        await orchestrator.run_migration()

        assert [p.entity_type for p in reports] == list(EntityType)
        assert [p.total for p in reports] == [3, 5, 3]
        assert all(p.is_complete and p.progress_percent == 100.0 for p in reports)

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
    ) -> None:
        callback = AsyncMock()
        orchestrator = MigrationOrchestrator(
            demo_source, target, progress_callback=callback, enable_tracing=False
        )

        await orchestrator.run_migration()

        assert callback.await_count == 3


class TestCancellation:
    """Tests for cancel()."""

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, orchestrator: MigrationOrchestrator) -> None:
        orchestrator.cancel()

        summary = await orchestrator.run_migration()

        assert summary.state is RunState.ABORTED
        assert summary.abort_reason == "cancelled"
        assert summary.users_migrated == 0
        assert orchestrator.is_cancel_requested

    @pytest.mark.asyncio
    async def test_cancel_from_progress_callback_stops_next_stage(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        migration_config: MigrationConfig,
    ) -> None:
        orchestrator: MigrationOrchestrator

        def cancel_after_users(progress: StageProgress) -> None:
            if progress.entity_type is EntityType.USER:
                orchestrator.cancel()

        orchestrator = MigrationOrchestrator(
            demo_source,
            target,
            config=migration_config,
            progress_callback=cancel_after_users,
            enable_tracing=False,
        )

        summary = await orchestrator.run_migration()

        assert summary.state is RunState.ABORTED
        assert summary.users_migrated == 3
        assert summary.accounts_migrated == 0
        assert summary.recomputation is None
        assert not orchestrator.mapper.is_sealed(EntityType.USER)
        assert await target.list_accounts() == []

    @pytest.mark.asyncio
    async def test_cancel_mid_stage_stops_between_records(
        self, demo_source: InMemorySourceStore
    ) -> None:
        target = RecordingTargetStore(enable_tracing=False)
        orchestrator = MigrationOrchestrator(
            demo_source,
            target,
            config=MigrationConfig(max_concurrency=1),
            enable_tracing=False,
        )
        original = target.insert_user

        async def insert_then_cancel(user):
            orchestrator.cancel()
            return await original(user)

        target.insert_user = insert_then_cancel  # type: ignore[method-assign]

        summary = await orchestrator.run_migration()

        assert summary.state is RunState.ABORTED
        assert summary.users_migrated == 1
        assert len(await target.list_users()) == 1


class TestAbort:
    """Tests for structural errors."""

    @pytest.mark.asyncio
    async def test_store_failure_aborts_with_partial_summary(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        migration_config: MigrationConfig,
    ) -> None:
        async def broken(account):
            raise StoreIOError("memory", "insert_account", "connection reset")

        target.insert_account = broken  # type: ignore[method-assign]
        orchestrator = MigrationOrchestrator(
            demo_source, target, config=migration_config, enable_tracing=False
        )

        with pytest.raises(MigrationAbortedError) as exc_info:
            await orchestrator.run_migration()

        error = exc_info.value
        assert isinstance(error.__cause__, StoreIOError)
        assert error.summary is orchestrator.summary
        assert error.summary.state is RunState.ABORTED
        assert error.summary.users_migrated == 3
        assert error.summary.accounts_migrated == 0
        assert "connection reset" in (error.summary.abort_reason or "")
        assert not orchestrator.mapper.is_sealed(EntityType.ACCOUNT)

    @pytest.mark.asyncio
    async def test_source_failure_aborts(self, target: InMemoryTargetStore) -> None:
        source = AsyncMock()
        source.load.side_effect = StoreIOError("mongodb", "find users", "timeout")
        orchestrator = MigrationOrchestrator(source, target, enable_tracing=False)

        with pytest.raises(MigrationAbortedError):
            await orchestrator.run_migration()

        assert orchestrator.state is RunState.ABORTED

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reraised(
        self, demo_source: InMemorySourceStore, target: InMemoryTargetStore
    ) -> None:
        async def broken(user):
            raise KeyError("boom")

        target.insert_user = broken  # type: ignore[method-assign]
        orchestrator = MigrationOrchestrator(demo_source, target, enable_tracing=False)

        with pytest.raises(KeyError):
            await orchestrator.run_migration()

        assert orchestrator.state is RunState.ABORTED
        assert orchestrator.summary.abort_reason is not None


class TestResume:
    """Tests for runs against an already populated target."""

    @pytest.mark.asyncio
    async def test_second_run_skips_everything(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        migration_config: MigrationConfig,
    ) -> None:
        first = await MigrationOrchestrator(
            demo_source, target, config=migration_config, enable_tracing=False
        ).run_migration()
        second_run = MigrationOrchestrator(
            demo_source, target, config=migration_config, enable_tracing=False
        )

        second = await second_run.run_migration()

        assert first.users_migrated == 3
        assert second.state is RunState.COMPLETED
        assert second.users_migrated == second.accounts_migrated == 0
        assert second.transactions_migrated == 0
        assert second.already_migrated_count(EntityType.USER) == 3
        assert second.already_migrated_count(EntityType.ACCOUNT) == 5
        assert second.already_migrated_count(EntityType.TRANSACTION) == 3
        assert len(second_run.mapper) == 11
        assert len(await target.list_accounts()) == 5

    @pytest.mark.asyncio
    async def test_shared_mapper_is_not_restored_twice(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        migration_config: MigrationConfig,
    ) -> None:
        """Mappings already held by an injected mapper are not registered again."""
        first = MigrationOrchestrator(
            demo_source, target, config=migration_config, enable_tracing=False
        )
        await first.run_migration()

        second = MigrationOrchestrator(
            demo_source,
            target,
            config=migration_config,
            mapper=first.mapper,
            enable_tracing=False,
        )
        summary = await second.run_migration()

        assert summary.state is RunState.COMPLETED
        assert summary.users_migrated == 0
        assert summary.already_migrated_count(EntityType.USER) == 3
        assert len(second.mapper) == 11

    @pytest.mark.asyncio
    async def test_shared_mapper_accepts_new_records(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        migration_config: MigrationConfig,
    ) -> None:
        """A mapper sealed by its first run registers records added since."""
        first = MigrationOrchestrator(
            demo_source, target, config=migration_config, enable_tracing=False
        )
        await first.run_migration()
        users = demo_users()
        users.append({**users[0], "_id": "mongo-id-9", "email": "novo@exemplo.com"})
        grown = InMemorySourceStore(users, demo_accounts(), demo_transactions())

        second = MigrationOrchestrator(
            grown,
            target,
            config=migration_config,
            mapper=first.mapper,
            enable_tracing=False,
        )
        summary = await second.run_migration()

        assert summary.state is RunState.COMPLETED
        assert summary.users_migrated == 1
        assert summary.already_migrated_count(EntityType.USER) == 3
        added = await target.get_user_by_source_id("mongo-id-9")
        assert added is not None
        assert second.mapper.resolve(EntityType.USER, "mongo-id-9") == added.id
        assert second.mapper.is_sealed(EntityType.TRANSACTION)


class TestTracing:
    @pytest.mark.asyncio
    async def test_emits_run_and_stage_spans(
        self,
        demo_source: InMemorySourceStore,
        target: InMemoryTargetStore,
        mock_tracer: MockTracer,
    ) -> None:
        orchestrator = MigrationOrchestrator(demo_source, target, tracer=mock_tracer)

        await orchestrator.run_migration()

        names = mock_tracer.span_names
        assert names[0] == "ledgermigrate.orchestrator.run_migration"
        assert "ledgermigrate.orchestrator.stage_users" in names
        assert "ledgermigrate.orchestrator.stage_transactions" in names
        assert names.count("ledgermigrate.migrator.migrate_account") == 5
        assert names[-1] == "ledgermigrate.aggregates.recompute"
