"""tculture - dual-ledger access rights with dynamic pricing."""

__version__ = "0.1.0"
