"""
Treasury Kernel

Revenue accounting core for a multi-party marketplace:
- Append-only double-entry ledger with derived balances
- Percentage-based revenue splits with idempotent application
- Risk-gated payout queue and batch payout processing
- Fire-and-forget audit event log
"""

__version__ = "0.1.0"
