"""
IdentityMapper - Translates source identifiers to target identifiers.

The mapper is the single source of truth the migrators use to translate
references between stores. One mapper instance belongs to one orchestrator
run and is passed to every migrator; it is never a module-level singleton.

Responsibilities:
    - Record (entity type, source id) -> target id mappings, write-once
    - Resolve references for child records
    - Track which entity types have passed their stage barrier
    - Reload mappings persisted by a previous run

Usage:
    >>> mapper = IdentityMapper()
    >>> await mapper.register(EntityType.USER, "mongo-id-1", user_id)
    >>> mapper.seal(EntityType.USER)
    >>> mapper.resolve(EntityType.USER, "mongo-id-1")
    UUID('...')
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from uuid import UUID

from ledgermigrate.exceptions import (
    DuplicateMappingError,
    IdentityMappingError,
    MissingMappingError,
)
from ledgermigrate.models import EntityType, IdentityMapping

logger = logging.getLogger(__name__)


class IdentityMapper:
    """
    Append-only registry of identity mappings, scoped per entity type.

    Registration is serialized with an asyncio lock so the workers of one
    stage can register concurrently. Reads take no lock: cross-stage reads
    only happen after the producing stage was sealed, and a sealed entity
    type accepts no further writes.

    Attributes:
        _mappings: Per entity type dictionary of source id -> target id.
        _sealed: Entity types whose stage barrier has been passed.
        _lock: Serializes registrations.
    """

    def __init__(self) -> None:
        self._mappings: dict[EntityType, dict[str, UUID]] = {
            entity_type: {} for entity_type in EntityType
        }
        self._sealed: set[EntityType] = set()
        self._lock = asyncio.Lock()

    async def register(self, entity_type: EntityType, source_id: str, target_id: UUID) -> None:
        """
        Record a new mapping.

        Args:
            entity_type: Entity type of the migrated record.
            source_id: Identifier in the source store.
            target_id: Identifier assigned in the target store.

        Raises:
            DuplicateMappingError: If source_id is already mapped for the type.
            IdentityMappingError: If the entity type has already been sealed.
        """
        async with self._lock:
            self._put(entity_type, source_id, target_id)
        logger.debug("Registered %s %s -> %s", entity_type.value, source_id, target_id)

    def restore(self, mappings: Iterable[IdentityMapping]) -> int:
        """
        Bulk-load mappings persisted by a previous run.

        Args:
            mappings: Mappings read back from the target store.

        Returns:
            Number of mappings loaded.

        Raises:
            DuplicateMappingError: If the input maps a source id twice, or
                maps one that is already registered.
        """
        count = 0
        for mapping in mappings:
            self._put(mapping.entity_type, mapping.source_id, mapping.target_id)
            count += 1
        if count:
            logger.info("Restored %d identity mappings from a previous run", count)
        return count

    def resolve(self, entity_type: EntityType, source_id: str) -> UUID:
        """
        Translate a source identifier into its target identifier.

        Args:
            entity_type: Entity type of the referenced record.
            source_id: Identifier in the source store.

        Returns:
            The target identifier.

        Raises:
            MissingMappingError: If no mapping exists. Unmapped keys never
                resolve to a default.
        """
        try:
            return self._mappings[entity_type][source_id]
        except KeyError:
            raise MissingMappingError(entity_type, source_id) from None

    def get(self, entity_type: EntityType, source_id: str) -> UUID | None:
        """Return the mapped target id, or None when the key is unmapped."""
        return self._mappings[entity_type].get(source_id)

    def contains(self, entity_type: EntityType, source_id: str) -> bool:
        return source_id in self._mappings[entity_type]

    def seal(self, entity_type: EntityType) -> None:
        """
        Mark the stage for an entity type as complete.

        After sealing, an absent mapping for the type means the record was
        never migrated, and further registrations are rejected.
        """
        self._sealed.add(entity_type)
        logger.debug(
            "Sealed %s mappings (%d entries)",
            entity_type.value,
            len(self._mappings[entity_type]),
        )

    def is_sealed(self, entity_type: EntityType) -> bool:
        return entity_type in self._sealed

    def reopen(self) -> None:
        """
        Clear every stage barrier so a new run can register into the mapper.

        Mappings are kept; only the sealed flags are reset.
        """
        if self._sealed:
            logger.debug(
                "Reopened sealed mappings: %s",
                ", ".join(sorted(entity_type.value for entity_type in self._sealed)),
            )
        self._sealed.clear()

    def check_registrable(self, entity_type: EntityType, source_id: str) -> None:
        """
        Raise if register() would reject this key.

        Migrators call this before writing the row the mapping will record.

        Raises:
            DuplicateMappingError: If source_id is already mapped for the type.
            IdentityMappingError: If the entity type has already been sealed.
        """
        if entity_type in self._sealed:
            raise IdentityMappingError(
                f"Cannot register {entity_type.value} {source_id!r}: "
                f"{entity_type.value} mappings are sealed"
            )
        existing = self._mappings[entity_type].get(source_id)
        if existing is not None:
            raise DuplicateMappingError(entity_type, source_id, existing)

    def count(self, entity_type: EntityType | None = None) -> int:
        """Number of mappings for one entity type, or for all of them."""
        if entity_type is not None:
            return len(self._mappings[entity_type])
        return sum(len(by_source) for by_source in self._mappings.values())

    def snapshot(self) -> list[IdentityMapping]:
        """Return a copy of every mapping, grouped by entity type."""
        return [
            IdentityMapping(entity_type, source_id, target_id)
            for entity_type, by_source in self._mappings.items()
            for source_id, target_id in by_source.items()
        ]

    def __len__(self) -> int:
        return self.count()

    def _put(self, entity_type: EntityType, source_id: str, target_id: UUID) -> None:
        self.check_registrable(entity_type, source_id)
        self._mappings[entity_type][source_id] = target_id
