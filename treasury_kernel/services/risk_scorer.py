"""
RiskScorer -- gathers risk inputs and scores a prospective payout.

Inputs come from the payee registry (account age), the payout queue (recent
outcomes for the account) and the dispute table (platform-wide count).  The
arithmetic lives in treasury_kernel.domain.risk.
"""

from decimal import Decimal

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.policies import RiskPolicy
from treasury_kernel.domain.risk import RiskAssessment, assess_risk
from treasury_kernel.logging_config import get_logger
from treasury_kernel.selectors.payout_selector import PayoutSelector
from treasury_kernel.services.dispute_service import DisputeService
from treasury_kernel.services.payee_service import PayeeService

logger = get_logger("services.risk")


class RiskScorer:
    """
    Read-only scorer.

    Guarantees:
        Score in [0, max_score], quantized to four decimal places.
    """

    def __init__(self, session: Session, policy: RiskPolicy, clock: Clock | None = None):
        self._policy = policy
        self._clock = clock or SystemClock()
        self._payees = PayeeService(session, self._clock)
        self._disputes = DisputeService(session, self._clock)
        self._payouts = PayoutSelector(session)

    @property
    def hold_threshold(self) -> Decimal:
        return self._policy.hold_threshold

    def assess(self, account_id: str, amount: int) -> RiskAssessment:
        assessment = assess_risk(
            self._policy,
            amount=amount,
            account_age_days=self._payees.get_account_age_days(account_id),
            recent_statuses=self._payouts.recent_statuses(
                account_id, self._policy.history_window
            ),
            recent_dispute_count=self._disputes.count_recent(self._policy.dispute_window_days),
        )
        logger.debug(
            "risk_assessed",
            extra={"account_id": account_id, "amount": amount, **assessment.to_dict()},
        )
        return assessment

    def score(self, account_id: str, amount: int) -> Decimal:
        """Risk score for paying ``amount`` to ``account_id``."""
        return self.assess(account_id, amount).score
