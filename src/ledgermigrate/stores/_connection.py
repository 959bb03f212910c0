"""
Connection scoping for the SQLAlchemy-backed target store.

An AsyncEngine gives each target write its own pooled connection and
transaction. A caller-supplied AsyncConnection is shared, so calls on it
take the store's lock and run inside the caller's transaction.
"""

import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ledgermigrate.exceptions import StoreIOError


@asynccontextmanager
async def target_connection(
    conn: AsyncConnection | AsyncEngine,
    operation: str,
    lock: contextlib.AbstractAsyncContextManager[object] | None = None,
    transactional: bool = True,
    store: str = "postgresql",
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection for one target store operation.

    Args:
        conn: Engine or caller-owned connection.
        operation: Named in the StoreIOError raised for driver failures.
        lock: Held around the operation when ``conn`` is a connection.
        transactional: ``begin()`` rather than ``connect()`` on an engine.
        store: Store name reported in StoreIOError.
    """
    guard = lock if isinstance(conn, AsyncConnection) and lock is not None else None
    async with guard or contextlib.nullcontext():
        try:
            if not isinstance(conn, AsyncEngine):
                yield conn
            elif transactional:
                async with conn.begin() as connection:
                    yield connection
            else:
                async with conn.connect() as connection:
                    yield connection
        except SQLAlchemyError as e:
            raise StoreIOError(store, operation, str(e)) from e
