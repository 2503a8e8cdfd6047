"""Treasury kernel services.  All of them flush; none of them commit."""

from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.dispute_service import DisputeService
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.payee_service import PayeeService
from treasury_kernel.services.payout_processor import PayoutProcessor
from treasury_kernel.services.payout_scheduler import PayoutScheduler
from treasury_kernel.services.risk_scorer import RiskScorer
from treasury_kernel.services.split_applier import SplitApplier
from treasury_kernel.services.split_rule_service import SplitRuleService

__all__ = [
    "AuditLog",
    "DisputeService",
    "LedgerService",
    "PayeeService",
    "PayoutProcessor",
    "PayoutScheduler",
    "RiskScorer",
    "SplitApplier",
    "SplitRuleService",
]
