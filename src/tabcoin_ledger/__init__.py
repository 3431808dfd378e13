"""TabCoin ledger transition engine and resilient Postgres access layer."""

__version__ = "0.1.0"
