"""
SQL schema for the relational target store.

Tables:
    - users: Migrated users, unique email
    - accounts: Migrated accounts, unique account number, FK to users
    - transactions: Migrated transactions, FKs to accounts

Every table carries a unique ``source_id`` column holding the identifier
the row had in the source store. It is what makes reruns idempotent: the
orchestrator restores its identity map from those columns.

Supported backends:
    - postgresql (default): Native UUID, NUMERIC and JSONB columns
    - sqlite: TEXT columns for UUIDs, decimals, timestamps and JSON

Usage:
    from ledgermigrate.stores.schema import get_schema

    # PostgreSQL
    ddl = get_schema()

    # SQLite
    async with aiosqlite.connect(":memory:") as db:
        await db.executescript(get_schema("sqlite"))
"""

from typing import Literal

BackendName = Literal["postgresql", "sqlite"]

TABLES: tuple[str, ...] = ("users", "accounts", "transactions")

_POSTGRESQL_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    source_id VARCHAR(255) NOT NULL UNIQUE,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255) NOT NULL UNIQUE,
    password VARCHAR(255) NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'client',
    document_type VARCHAR(20) NOT NULL DEFAULT 'cpf',
    document_number VARCHAR(50) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'active',
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id UUID PRIMARY KEY,
    source_id VARCHAR(255) NOT NULL UNIQUE,
    user_id UUID NOT NULL REFERENCES users(id),
    account_number VARCHAR(50) NOT NULL UNIQUE,
    account_type VARCHAR(20) NOT NULL,
    name VARCHAR(255) NOT NULL,
    currency VARCHAR(10) NOT NULL,
    balance NUMERIC(28, 8) NOT NULL DEFAULT 0,
    status VARCHAR(20) NOT NULL DEFAULT 'active',
    daily_transfer_limit NUMERIC(28, 8) NOT NULL CHECK (daily_transfer_limit >= 0),
    monthly_transfer_limit NUMERIC(28, 8) NOT NULL CHECK (monthly_transfer_limit >= 0),
    daily_transfer_total NUMERIC(28, 8) NOT NULL DEFAULT 0,
    monthly_transfer_total NUMERIC(28, 8) NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);

CREATE TABLE IF NOT EXISTS transactions (
    id UUID PRIMARY KEY,
    source_id VARCHAR(255) NOT NULL UNIQUE,
    source_account_id UUID REFERENCES accounts(id),
    destination_account_id UUID REFERENCES accounts(id),
    source_account_number VARCHAR(50),
    destination_account_number VARCHAR(50),
    amount NUMERIC(28, 8) NOT NULL CHECK (amount > 0),
    currency VARCHAR(10) NOT NULL,
    transaction_type VARCHAR(20) NOT NULL,
    status VARCHAR(20) NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    metadata JSONB NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_source_account ON transactions(source_account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_destination_account
    ON transactions(destination_account_id);
"""

_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'client',
    document_type TEXT NOT NULL DEFAULT 'cpf',
    document_number TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES users(id),
    account_number TEXT NOT NULL UNIQUE,
    account_type TEXT NOT NULL,
    name TEXT NOT NULL,
    currency TEXT NOT NULL,
    balance TEXT NOT NULL DEFAULT '0',
    status TEXT NOT NULL DEFAULT 'active',
    daily_transfer_limit TEXT NOT NULL,
    monthly_transfer_limit TEXT NOT NULL,
    daily_transfer_total TEXT NOT NULL DEFAULT '0',
    monthly_transfer_total TEXT NOT NULL DEFAULT '0',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL UNIQUE,
    source_account_id TEXT REFERENCES accounts(id),
    destination_account_id TEXT REFERENCES accounts(id),
    source_account_number TEXT,
    destination_account_number TEXT,
    amount TEXT NOT NULL,
    currency TEXT NOT NULL,
    transaction_type TEXT NOT NULL,
    status TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_source_account ON transactions(source_account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_destination_account
    ON transactions(destination_account_id);
"""

_SCHEMAS: dict[str, str] = {
    "postgresql": _POSTGRESQL_SCHEMA,
    "sqlite": _SQLITE_SCHEMA,
}


def get_schema(backend: BackendName = "postgresql") -> str:
    """
    Return the DDL creating every target table for a backend.

    The statements use ``IF NOT EXISTS`` so executing them twice is safe.

    Args:
        backend: The database backend. One of "postgresql" (default) or
            "sqlite".

    Returns:
        SQL schema definition as a string

    Raises:
        ValueError: If the backend is not supported

    Example:
        >>> from ledgermigrate.stores.schema import get_schema
        >>> ddl = get_schema("sqlite")
    """
    try:
        return _SCHEMAS[backend]
    except KeyError:
        raise ValueError(
            f"Unsupported backend {backend!r}. Available backends: {sorted(_SCHEMAS)}"
        ) from None


def get_schema_statements(backend: BackendName = "postgresql") -> list[str]:
    """
    Split the schema into individual statements.

    Drivers that prepare statements (asyncpg among them) refuse to run
    several statements in one call.
    """
    return [
        statement.strip()
        for statement in get_schema(backend).split(";")
        if statement.strip()
    ]
