"""
MongoDB source store.

Reads the legacy document ledger with pymongo. pymongo is synchronous, so
each collection scan runs in a worker thread via ``asyncio.to_thread`` to
keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from bson import Decimal128, ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from ledgermigrate.exceptions import StoreIOError
from ledgermigrate.models import EntityType
from ledgermigrate.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_RECORD_COUNT,
    Tracer,
    create_tracer,
)
from ledgermigrate.stores.interface import SourceStore

logger = logging.getLogger(__name__)

DEFAULT_COLLECTIONS: dict[str, str] = {
    "users": "users",
    "accounts": "accounts",
    "transactions": "transactions",
}


class MongoSourceStore(SourceStore):
    """
    Source store backed by a MongoDB database.

    ObjectId values (document ids and references such as ``userId``) are
    converted to their hex strings and Decimal128 amounts to Decimal before
    the documents are handed over for parsing. Driver errors raise
    StoreIOError; documents that fail to parse are rejected individually.

    Example:
        >>> client = MongoClient("mongodb://localhost:27017")
        >>> source = MongoSourceStore(client, database="banking")
        >>> users = await source.list_users()
    """

    def __init__(
        self,
        client: MongoClient,
        database: str,
        *,
        collections: Mapping[str, str] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the MongoDB source store.

        Args:
            client: Connected pymongo client. The caller owns its lifecycle.
            database: Name of the database holding the ledger.
            collections: Optional override of the collection names, keyed by
                "users", "accounts" and "transactions".
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._client = client
        self._database = database
        self._collections = {**DEFAULT_COLLECTIONS, **(collections or {})}
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def read_documents(self, entity_type: EntityType) -> list[dict[str, Any]]:
        kind = entity_type.plural
        collection = self._collections[kind]
        with self._tracer.span(
            f"ledgermigrate.mongo_store.list_{kind}",
            {
                ATTR_DB_SYSTEM: "mongodb",
                ATTR_DB_NAME: self._database,
                ATTR_DB_OPERATION: "find",
            },
        ) as span:
            try:
                documents = await asyncio.to_thread(self._find_all, collection)
            except PyMongoError as e:
                raise StoreIOError("mongodb", f"find {collection}", str(e)) from e

            if span is not None:
                span.set_attribute(ATTR_RECORD_COUNT, len(documents))
            logger.debug(
                "Read %d documents from %s.%s", len(documents), self._database, collection
            )
            return [normalize_document(document) for document in documents]

    def _find_all(self, collection: str) -> list[dict[str, Any]]:
        return list(self._client[self._database][collection].find({}))


def normalize_document(document: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert BSON-specific values of a document to plain Python values.

    Args:
        document: Raw document as returned by pymongo.

    Returns:
        A new dictionary with ObjectId -> str and Decimal128 -> Decimal.
    """
    return {key: _normalize_value(value) for key, value in document.items()}


def _normalize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return normalize_document(value)
    if isinstance(value, list):
        return [_normalize_value(item) for item in value]
    return value
