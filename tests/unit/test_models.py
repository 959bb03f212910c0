"""
Unit tests for the ledgermigrate data models.

Tests cover:
- Parsing of document-store shapes (aliases, null fields, defaults)
- Setting aside documents that fail to parse
- Target row constraints
- MigrationSummary bookkeeping
- StageProgress and RunState helpers
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

import pydantic
import pytest

from ledgermigrate.models import (
    AccountStatus,
    AccountType,
    AlreadyMigrated,
    EntityType,
    Failed,
    Migrated,
    MigrationSummary,
    RunState,
    SourceAccount,
    SourceTransaction,
    SourceUser,
    StageProgress,
    TransactionStatus,
    UserRole,
    parse_documents,
)
from tests.fixtures import demo_accounts, demo_users, make_target_account, make_target_transaction


class TestEntityType:
    def test_dependency_order(self):
        assert list(EntityType) == [EntityType.USER, EntityType.ACCOUNT, EntityType.TRANSACTION]

    def test_plural(self):
        assert EntityType.ACCOUNT.plural == "accounts"


class TestSourceModels:
    """Tests for parsing document-store records."""

    def test_user_from_document(self) -> None:
        user = SourceUser.model_validate(demo_users()[2])

        assert user.source_id == "mongo-id-3"
        assert user.role is UserRole.ADMIN
        assert user.document_number == "11122233344"
        assert user.created_at == datetime(2022, 12, 1, tzinfo=UTC)

    def test_null_fields_fall_back_to_defaults(self) -> None:
        user = SourceUser.model_validate(
            {
                "_id": "u",
                "name": "Ana",
                "email": "ana@example.com",
                "password": "hash",
                "role": None,
                "status": None,
            }
        )

        assert user.role is UserRole.CLIENT
        assert user.status == "active"

    def test_missing_identifier_is_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            SourceUser.model_validate({"name": "Ana", "email": "a@b.c", "password": "x"})

    def test_account_from_document(self) -> None:
        account = SourceAccount.model_validate(demo_accounts()[0])

        assert account.user_id == "mongo-id-1"
        assert account.account_number == "ACC00001"
        assert account.account_type is AccountType.INTERNAL
        assert account.balance == Decimal("1500.75")
        assert account.status is AccountStatus.ACTIVE
        assert account.daily_transfer_limit is None

    def test_account_name_defaults_from_currency(self) -> None:
        account = SourceAccount.model_validate(
            {"_id": "a", "userId": "u", "accountNumber": "ACC9", "currency": "eur"}
        )

        assert account.name == "eur Account"
        assert account.currency == "EUR"

    def test_numeric_identifiers_become_strings(self) -> None:
        account = SourceAccount.model_validate(
            {"_id": 42, "userId": 7, "accountNumber": "ACC42", "currency": "USD"}
        )

        assert account.source_id == "42"
        assert account.user_id == "7"

    def test_transaction_defaults(self) -> None:
        transaction = SourceTransaction.model_validate(
            {"_id": "t", "amount": "12.5", "currency": "usd", "destinationAccountId": "a"}
        )

        assert transaction.transaction_type == "transfer"
        assert transaction.status is TransactionStatus.COMPLETED
        assert transaction.source_account_id is None
        assert transaction.amount == Decimal("12.5")
        assert transaction.currency == "USD"
        assert transaction.metadata == {}


class TestParseDocuments:
    """Tests for parse_documents."""

    def test_invalid_document_is_set_aside(self) -> None:
        users = demo_users()
        del users[1]["email"]

        batch = parse_documents(EntityType.USER, users)

        assert [user.source_id for user in batch.records] == ["mongo-id-1", "mongo-id-3"]
        assert len(batch.rejected) == 1
        rejected = batch.rejected[0]
        assert rejected.source_id == "mongo-id-2"
        assert rejected.field == "email"
        assert rejected.reason.startswith("invalid email:")
        assert batch.total == 3

    def test_parsed_records_pass_through(self) -> None:
        account = SourceAccount.model_validate(demo_accounts()[0])

        batch = parse_documents(EntityType.ACCOUNT, [account])

        assert batch.records == [account]
        assert batch.rejected == []

    def test_document_without_id(self) -> None:
        batch = parse_documents(EntityType.TRANSACTION, [{"amount": "10"}])

        assert batch.records == []
        assert batch.rejected[0].source_id == ""


class TestTargetModels:
    """Tests for target row constraints."""

    def test_fresh_uuid_per_row(self) -> None:
        owner = uuid4()

        first = make_target_account(owner)
        second = make_target_account(owner)

        assert isinstance(first.id, UUID)
        assert first.id != second.id

    def test_totals_default_to_zero(self) -> None:
        account = make_target_account(uuid4())

        assert account.daily_transfer_total == Decimal("0")
        assert account.monthly_transfer_total == Decimal("0")

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            make_target_account(uuid4(), daily_transfer_limit=Decimal("-1"))

    def test_non_positive_amount_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            make_target_transaction(None, None, amount=Decimal("0"))

    def test_rows_are_frozen(self) -> None:
        account = make_target_account(uuid4())

        with pytest.raises(pydantic.ValidationError):
            account.balance = Decimal("1")  # type: ignore[misc]


class TestMigrationSummary:
    """Tests for MigrationSummary bookkeeping."""

    def test_record_counts_per_outcome(self) -> None:
        summary = MigrationSummary()

        summary.record(Migrated(EntityType.USER, "u1", uuid4()))
        summary.record(Migrated(EntityType.USER, "u2", uuid4()))
        summary.record(AlreadyMigrated(EntityType.ACCOUNT, "a1", uuid4()))
        summary.record(Failed(EntityType.TRANSACTION, "t1", "bad amount", "ValidationError"))

        assert summary.users_migrated == 2
        assert summary.migrated_count(EntityType.USER) == 2
        assert summary.already_migrated_count(EntityType.ACCOUNT) == 1
        assert summary.failed_count(EntityType.TRANSACTION) == 1
        assert summary.total_failed == 1
        assert summary.has_failures
        assert summary.failures[0].source_id == "t1"

    def test_new_summary_is_not_started(self) -> None:
        summary = MigrationSummary()

        assert summary.state is RunState.NOT_STARTED
        assert not summary.has_failures
        assert summary.recomputation is None

    def test_to_dict(self) -> None:
        summary = MigrationSummary()
        summary.record(Failed(EntityType.USER, "u1", "email in use", "ValidationError"))
        summary.state = RunState.COMPLETED

        data = summary.to_dict()

        assert data["run_id"] == str(summary.run_id)
        assert data["state"] == "completed"
        assert data["users_failed"] == 1
        assert data["failures"] == [
            {
                "entity_type": "user",
                "source_id": "u1",
                "reason": "email in use",
                "error_type": "ValidationError",
            }
        ]
        assert data["started_at"] is None


class TestRunState:
    def test_terminal_states(self) -> None:
        assert RunState.COMPLETED.is_terminal
        assert RunState.ABORTED.is_terminal
        assert not RunState.IN_PROGRESS.is_terminal
        assert not RunState.NOT_STARTED.is_terminal


class TestStageProgress:
    """Tests for StageProgress."""

    def test_progress_percent(self) -> None:
        progress = StageProgress(
            entity_type=EntityType.ACCOUNT,
            total=4,
            migrated=1,
            already_migrated=1,
            failed=1,
            is_complete=False,
        )

        assert progress.processed == 3
        assert progress.progress_percent == 75.0

    def test_empty_stage_is_fully_processed(self) -> None:
        progress = StageProgress(EntityType.USER, 0, 0, 0, 0, True)

        assert progress.progress_percent == 100.0
