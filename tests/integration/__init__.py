"""
Integration tests for the ledgermigrate library.

These tests run complete migrations and audits over the demo ledger
against the in-memory and SQLite target stores. No external services are
required.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
