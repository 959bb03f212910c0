"""
Unit tests for MongoSourceStore.

The pymongo client is mocked; documents carry real BSON types.

Tests for:
- ObjectId and Decimal128 normalization
- Collection name overrides
- PyMongoError -> StoreIOError
- Invalid documents rejected one by one
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock

import pytest
from bson import Decimal128, ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from ledgermigrate.exceptions import StoreIOError
from ledgermigrate.models import EntityType
from ledgermigrate.observability import ATTR_DB_SYSTEM, MockTracer
from ledgermigrate.stores.mongo import MongoSourceStore, normalize_document
from tests.fixtures import demo_users

USER_OID = ObjectId("64b7f0c2a1b2c3d4e5f60718")
ACCOUNT_OID = ObjectId("64b7f0c2a1b2c3d4e5f60719")


def _client(collections: dict[str, list[dict[str, Any]]], database: str = "banking") -> MagicMock:
    handles: dict[str, MagicMock] = {}
    for name, documents in collections.items():
        handle = MagicMock()
        handle.find.return_value = iter(documents)
        handles[name] = handle

    db = MagicMock()
    db.__getitem__.side_effect = lambda name: handles[name]
    client = MagicMock()
    client.__getitem__.side_effect = lambda name: db if name == database else MagicMock()
    return client


class TestNormalizeDocument:
    def test_converts_bson_values(self):
        document = {
            "_id": ACCOUNT_OID,
            "userId": USER_OID,
            "balance": Decimal128("1500.75"),
            "history": [{"amount": Decimal128("1.10")}],
            "name": "Conta USD",
        }

        normalized = normalize_document(document)

        assert normalized["_id"] == "64b7f0c2a1b2c3d4e5f60719"
        assert normalized["userId"] == "64b7f0c2a1b2c3d4e5f60718"
        assert normalized["balance"] == Decimal("1500.75")
        assert normalized["history"] == [{"amount": Decimal("1.10")}]
        assert normalized["name"] == "Conta USD"

    def test_does_not_mutate_input(self):
        document = {"_id": USER_OID}

        normalize_document(document)

        assert document["_id"] is USER_OID


class TestMongoSourceStore:
    """Tests for the listing methods."""

    @pytest.mark.asyncio
    async def test_list_accounts(self) -> None:
        client = _client(
            {
                "accounts": [
                    {
                        "_id": ACCOUNT_OID,
                        "userId": USER_OID,
                        "accountNumber": "ACC00001",
                        "currency": "USD",
                        "balance": Decimal128("1500.75"),
                    }
                ]
            }
        )
        source = MongoSourceStore(client, "banking", enable_tracing=False)

        accounts = await source.list_accounts()

        assert len(accounts) == 1
        assert accounts[0].source_id == str(ACCOUNT_OID)
        assert accounts[0].user_id == str(USER_OID)
        assert accounts[0].balance == Decimal("1500.75")

    @pytest.mark.asyncio
    async def test_list_users_reads_full_collection(self) -> None:
        client = _client({"users": demo_users()})
        source = MongoSourceStore(client, "banking", enable_tracing=False)

        users = await source.list_users()

        assert [user.email for user in users][0] == "joao.silva@exemplo.com"
        assert len(users) == 3

    @pytest.mark.asyncio
    async def test_collection_override(self) -> None:
        client = _client({"tx_history": []})
        source = MongoSourceStore(
            client,
            "banking",
            collections={"transactions": "tx_history"},
            enable_tracing=False,
        )

        assert await source.list_transactions() == []

    @pytest.mark.asyncio
    async def test_driver_error_becomes_store_error(self) -> None:
        handle = MagicMock()
        handle.find.side_effect = ServerSelectionTimeoutError("no servers")
        db = MagicMock()
        db.__getitem__.return_value = handle
        client = MagicMock()
        client.__getitem__.return_value = db
        source = MongoSourceStore(client, "banking", enable_tracing=False)

        with pytest.raises(StoreIOError) as exc_info:
            await source.list_users()

        assert exc_info.value.store == "mongodb"
        assert exc_info.value.operation == "find users"

    @pytest.mark.asyncio
    async def test_invalid_document_is_rejected(self) -> None:
        client = _client({"users": [{"_id": USER_OID, "name": "No Email"}, *demo_users()[:1]]})
        source = MongoSourceStore(client, "banking", enable_tracing=False)

        batch = await source.load(EntityType.USER)

        assert [user.source_id for user in batch.records] == ["mongo-id-1"]
        assert [rejected.source_id for rejected in batch.rejected] == [str(USER_OID)]
        assert batch.rejected[0].field == "email"
        assert batch.total == 2

    @pytest.mark.asyncio
    async def test_traces_find(self, mock_tracer: MockTracer) -> None:
        client = _client({"users": demo_users()})
        source = MongoSourceStore(client, "banking", tracer=mock_tracer)

        await source.list_users()

        attributes = mock_tracer.attributes_of("ledgermigrate.mongo_store.list_users")
        assert attributes[ATTR_DB_SYSTEM] == "mongodb"
