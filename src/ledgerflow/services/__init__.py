"""Service layer for the ledger core."""
