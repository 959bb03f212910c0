"""
Shared pytest fixtures for the ledgermigrate tests.

This module provides:
- Store fixtures (demo_source, target, sqlite_target)
- Run fixtures (mapper, migration_config, orchestrator, migrated_target)
- Tracing fixtures (mock_tracer)

All fixtures are function scoped; every test gets fresh stores.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from ledgermigrate.config import MigrationConfig
from ledgermigrate.identity import IdentityMapper
from ledgermigrate.observability import MockTracer
from ledgermigrate.orchestrator import MigrationOrchestrator
from ledgermigrate.stores.in_memory import InMemorySourceStore, InMemoryTargetStore
from ledgermigrate.stores.sqlite import SQLiteTargetStore
from tests.fixtures import (
    REFERENCE_TIME,
    demo_accounts,
    demo_transactions,
    demo_users,
)

# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")
    config.addinivalue_line("markers", "integration: marks end-to-end migration scenarios")


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def demo_source() -> InMemorySourceStore:
    """
    Provide the three-user / five-account / three-transaction source.

    Returns:
        An InMemorySourceStore holding the demo dataset.
    """
    return InMemorySourceStore(
        users=demo_users(),
        accounts=demo_accounts(),
        transactions=demo_transactions(),
    )


@pytest.fixture
def target() -> InMemoryTargetStore:
    """Provide an empty in-memory target store without tracing."""
    return InMemoryTargetStore(enable_tracing=False)


@pytest_asyncio.fixture
async def sqlite_target() -> AsyncGenerator[SQLiteTargetStore, None]:
    """
    Provide an initialized in-memory SQLite target store.

    Yields:
        SQLiteTargetStore with the schema created; closed afterwards.
    """
    store = SQLiteTargetStore(":memory:", enable_tracing=False)
    async with store:
        await store.initialize()
        yield store


# =============================================================================
# Run Fixtures
# =============================================================================


@pytest.fixture
def mapper() -> IdentityMapper:
    return IdentityMapper()


@pytest.fixture
def migration_config() -> MigrationConfig:
    """Run configuration anchored to the demo dataset's last transfer day."""
    return MigrationConfig(max_concurrency=4, reference_time=REFERENCE_TIME)


@pytest.fixture
def orchestrator(
    demo_source: InMemorySourceStore,
    target: InMemoryTargetStore,
    migration_config: MigrationConfig,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        demo_source,
        target,
        config=migration_config,
        enable_tracing=False,
    )


@pytest_asyncio.fixture
async def migrated_target(
    orchestrator: MigrationOrchestrator,
    target: InMemoryTargetStore,
) -> InMemoryTargetStore:
    """Provide the in-memory target after a full migration of the demo source."""
    await orchestrator.run_migration()
    return target


# =============================================================================
# Tracing Fixtures
# =============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a MockTracer that records span names and attributes."""
    return MockTracer()
