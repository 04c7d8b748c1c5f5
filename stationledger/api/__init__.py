"""HTTP adapter over the ledger core."""
