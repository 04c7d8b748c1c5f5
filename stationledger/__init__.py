"""Station ledger - tenant resolution and double-entry ledger engine."""

__version__ = "0.1.0"
