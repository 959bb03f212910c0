"""
Shared test fixtures for the ledgermigrate tests.

Usage:
    from tests.fixtures import (
        REFERENCE_TIME,
        demo_users,
        demo_accounts,
        demo_transactions,
        make_target_user,
        make_target_account,
        make_target_transaction,
    )
"""

from tests.fixtures.ledger import (
    PASSWORD_HASH,
    REFERENCE_TIME,
    demo_accounts,
    demo_transactions,
    demo_users,
    make_target_account,
    make_target_transaction,
    make_target_user,
)

__all__ = [
    "PASSWORD_HASH",
    "REFERENCE_TIME",
    "demo_accounts",
    "demo_transactions",
    "demo_users",
    "make_target_account",
    "make_target_transaction",
    "make_target_user",
]
