"""
treasury_batch -- scheduled payout runs.

Drives ``PayoutProcessor.process_due_payouts`` from an in-process polling
loop at the configured daily batch time.  Nothing in treasury_kernel
imports from this package.
"""

from treasury_batch.runner import build_payout_batch_scheduler
from treasury_batch.scheduler import PayoutBatchScheduler

__all__ = ["PayoutBatchScheduler", "build_payout_batch_scheduler"]
