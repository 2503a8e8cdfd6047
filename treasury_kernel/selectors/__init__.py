"""Read-only selectors for the treasury kernel."""

from treasury_kernel.selectors.ledger_selector import LedgerSelector
from treasury_kernel.selectors.payout_selector import PayoutSelector

__all__ = ["LedgerSelector", "PayoutSelector"]
