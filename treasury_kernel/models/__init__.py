"""ORM models for the treasury kernel."""

from treasury_kernel.models.audit_event import AuditEvent, AuditEventType
from treasury_kernel.models.dispute import Dispute
from treasury_kernel.models.ledger import LedgerEntry
from treasury_kernel.models.payee import PayeeAccount
from treasury_kernel.models.payout import Payout
from treasury_kernel.models.split_rule import SplitApplication, SplitRule

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "Dispute",
    "LedgerEntry",
    "PayeeAccount",
    "Payout",
    "SplitApplication",
    "SplitRule",
]
