"""
MigrationOrchestrator - Drives one migration run end to end.

Pipeline:
    users -> barrier -> accounts -> barrier -> transactions -> barrier
          -> aggregate recomputation

Within a stage, a pool of worker tasks drains a queue of source records;
records of one entity type are independent of each other. A stage is
sealed in the identity mapper only once every record has an outcome, and
the next stage starts only after that.

Run states:
    NOT_STARTED -> IN_PROGRESS -> COMPLETED  (record failures tolerated)
                        |
                        +------> ABORTED    (cancelled, or structural error)

Usage:
    >>> orchestrator = MigrationOrchestrator(source, target)
    >>> summary = await orchestrator.run_migration()
    >>> summary.state
    <RunState.COMPLETED: 'completed'>
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from ledgermigrate.aggregates import AggregateRecomputer
from ledgermigrate.config import MigrationConfig
from ledgermigrate.exceptions import LedgerMigrateError, MigrationAbortedError, ValidationError
from ledgermigrate.identity import IdentityMapper
from ledgermigrate.migrators import (
    AccountMigrator,
    EntityMigrator,
    TransactionMigrator,
    UserMigrator,
)
from ledgermigrate.models import (
    EntityType,
    Failed,
    MigrationSummary,
    RunState,
    SourceBatch,
    SourceRecord,
    StageProgress,
)
from ledgermigrate.observability import (
    ATTR_ENTITY_TYPE,
    ATTR_MAX_CONCURRENCY,
    ATTR_RECORD_COUNT,
    ATTR_RUN_ID,
    ATTR_RUN_STATE,
    Tracer,
    create_tracer,
)
from ledgermigrate.stores.interface import SourceStore, TargetStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StageProgress], Any]


class MigrationOrchestrator:
    """
    Runs the dependency-ordered migration of one source/target pair.

    The orchestrator owns the IdentityMapper and the MigrationSummary for
    the duration of the run. Mappings persisted by a previous run are
    restored from the target store first, so re-running against an already
    populated target skips what was migrated and creates no duplicates.

    An orchestrator instance performs a single run.

    Attributes:
        summary: The summary being accumulated (partial until the run ends).
        mapper: The identity mapper of this run.

    Example:
        >>> orchestrator = MigrationOrchestrator(
        ...     source,
        ...     target,
        ...     config=MigrationConfig(max_concurrency=4),
        ...     progress_callback=lambda p: print(p.entity_type, p.progress_percent),
        ... )
        >>> try:
        ...     summary = await orchestrator.run_migration()
        ... except MigrationAbortedError as e:
        ...     summary = e.summary
    """

    def __init__(
        self,
        source: SourceStore,
        target: TargetStore,
        *,
        config: MigrationConfig | None = None,
        mapper: IdentityMapper | None = None,
        progress_callback: ProgressCallback | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            source: Store the records are read from.
            target: Store the records are written to.
            config: Run configuration (defaults to MigrationConfig()).
            mapper: Identity mapper to use. A fresh one is created if omitted.
                Its stage barriers are cleared when the run starts.
            progress_callback: Called with a StageProgress after each stage.
                May be a plain function or a coroutine function.
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._source = source
        self._target = target
        self._config = config or MigrationConfig()
        self.mapper = mapper or IdentityMapper()
        self._progress_callback = progress_callback
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self.summary = MigrationSummary()
        self._cancel_requested = False

    @property
    def state(self) -> RunState:
        return self.summary.state

    @property
    def is_cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """
        Ask the run to stop between records.

        Records already being migrated finish; no new record is started and
        the run ends ABORTED. Mappings registered so far stay valid, so a
        later run resumes where this one stopped.
        """
        if not self._cancel_requested:
            logger.info("Cancellation requested for migration run %s", self.summary.run_id)
        self._cancel_requested = True

    async def run_migration(self) -> MigrationSummary:
        """
        Execute the migration.

        Returns:
            The summary of a COMPLETED run, or the partial summary of a run
            ABORTED by cancel().

        Raises:
            MigrationAbortedError: If a structural error (store failure,
                identity mapper contract violation) stopped the run. The
                partial summary is attached and the cause is chained.
            RuntimeError: If this orchestrator already ran.
        """
        if self.summary.state is not RunState.NOT_STARTED:
            raise RuntimeError(
                f"Migration run {self.summary.run_id} was already started "
                f"(state={self.summary.state.value}); create a new orchestrator"
            )

        summary = self.summary
        summary.state = RunState.IN_PROGRESS
        summary.started_at = datetime.now(UTC)
        reference_time = self._config.reference_time or summary.started_at

        with self._tracer.span(
            "ledgermigrate.orchestrator.run_migration",
            {
                ATTR_RUN_ID: str(summary.run_id),
                ATTR_MAX_CONCURRENCY: self._config.max_concurrency,
            },
        ) as span:
            logger.info(
                "Starting migration run %s (max_concurrency=%d)",
                summary.run_id,
                self._config.max_concurrency,
            )
            try:
                await self._restore_mappings()

                stages: list[tuple[EntityType, type[EntityMigrator[Any]]]] = [
                    (EntityType.USER, UserMigrator),
                    (EntityType.ACCOUNT, AccountMigrator),
                    (EntityType.TRANSACTION, TransactionMigrator),
                ]
                for entity_type, migrator_cls in stages:
                    if self._cancel_requested:
                        return self._finish_cancelled(span)

                    batch = await self._source.load(entity_type)
                    migrator = migrator_cls(
                        self._target,
                        self.mapper,
                        config=self._config,
                        tracer=self._tracer,
                    )
                    complete = await self._run_stage(batch, migrator)
                    if not complete or self._cancel_requested:
                        return self._finish_cancelled(span)
                    self.mapper.seal(entity_type)

                recomputer = AggregateRecomputer(self._target, tracer=self._tracer)
                summary.recomputation = await recomputer.recompute(reference_time)
            except LedgerMigrateError as e:
                self._finish(RunState.ABORTED, span, abort_reason=str(e))
                logger.error(
                    "Migration run %s aborted: %s",
                    summary.run_id,
                    e,
                    exc_info=True,
                )
                raise MigrationAbortedError(
                    f"Migration run {summary.run_id} aborted: {e}", summary
                ) from e
            except Exception as e:
                self._finish(RunState.ABORTED, span, abort_reason=f"unexpected error: {e}")
                raise

            self._finish(RunState.COMPLETED, span)
            logger.info(
                "Migration run %s completed: users %d/%d, accounts %d/%d, "
                "transactions %d/%d (migrated/failed), %d already migrated",
                summary.run_id,
                summary.users_migrated,
                summary.users_failed,
                summary.accounts_migrated,
                summary.accounts_failed,
                summary.transactions_migrated,
                summary.transactions_failed,
                sum(summary.already_migrated_count(t) for t in EntityType),
            )
            return summary

    async def _restore_mappings(self) -> None:
        # Barriers are per run; an injected mapper may still be sealed from its last run.
        self.mapper.reopen()
        persisted = await self._target.load_identity_mappings()
        fresh = [
            mapping
            for mapping in persisted
            if self.mapper.get(mapping.entity_type, mapping.source_id) != mapping.target_id
        ]
        self.mapper.restore(fresh)

    async def _run_stage(
        self,
        batch: SourceBatch,
        migrator: EntityMigrator[Any],
    ) -> bool:
        """
        Migrate every record of one entity type through a worker pool.

        Documents that failed to parse are counted as failed records up front.

        Returns:
            True if every record reached an outcome, False if the stage was
            cut short by cancellation.

        Raises:
            Exception: The first structural error raised by a worker, after
                the other workers finished their in-flight record.
        """
        entity_type = batch.entity_type
        records = batch.records
        total = batch.total
        with self._tracer.span(
            f"ledgermigrate.orchestrator.stage_{entity_type.plural}",
            {ATTR_ENTITY_TYPE: entity_type.value, ATTR_RECORD_COUNT: total},
        ):
            logger.info("Migrating %d %s", total, entity_type.plural)
            for rejected in batch.rejected:
                logger.warning(
                    "Failed to migrate %s %s: %s",
                    entity_type.value,
                    rejected.source_id,
                    rejected.reason,
                )
                self.summary.record(
                    Failed(
                        entity_type,
                        rejected.source_id,
                        rejected.reason,
                        ValidationError.__name__,
                    )
                )

            await migrator.prepare()

            queue: asyncio.Queue[SourceRecord] = asyncio.Queue()
            for record in records:
                queue.put_nowait(record)

            errors: list[BaseException] = []
            processed = 0

            async def worker() -> None:
                nonlocal processed
                while not self._cancel_requested and not errors:
                    try:
                        record = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    try:
                        outcome = await migrator.migrate(record)
                    except Exception as e:
                        errors.append(e)
                        return
                    self.summary.record(outcome)
                    processed += 1

            worker_count = min(self._config.max_concurrency, len(records))
            if worker_count:
                await asyncio.gather(
                    *(
                        asyncio.create_task(worker(), name=f"{entity_type.value}-worker-{i}")
                        for i in range(worker_count)
                    )
                )

            if errors:
                raise errors[0]

            complete = processed == len(records)
            await self._report_progress(
                StageProgress(
                    entity_type=entity_type,
                    total=total,
                    migrated=self.summary.migrated_count(entity_type),
                    already_migrated=self.summary.already_migrated_count(entity_type),
                    failed=self.summary.failed_count(entity_type),
                    is_complete=complete,
                )
            )
            logger.info(
                "%s stage %s: %d migrated, %d already migrated, %d failed",
                entity_type.value.capitalize(),
                "finished" if complete else "stopped early",
                self.summary.migrated_count(entity_type),
                self.summary.already_migrated_count(entity_type),
                self.summary.failed_count(entity_type),
            )
            return complete

    async def _report_progress(self, progress: StageProgress) -> None:
        if self._progress_callback is None:
            return
        result = self._progress_callback(progress)
        if asyncio.iscoroutine(result):
            await result

    def _finish_cancelled(self, span: Any) -> MigrationSummary:
        self._finish(RunState.ABORTED, span, abort_reason="cancelled")
        logger.warning(
            "Migration run %s cancelled after %d migrated records",
            self.summary.run_id,
            sum(self.summary.migrated_count(t) for t in EntityType),
        )
        return self.summary

    def _finish(self, state: RunState, span: Any, abort_reason: str | None = None) -> None:
        self.summary.state = state
        self.summary.finished_at = datetime.now(UTC)
        self.summary.abort_reason = abort_reason
        if span is not None:
            span.set_attribute(ATTR_RUN_STATE, state.value)
