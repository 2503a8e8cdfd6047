"""
PayoutScheduler -- validates, risk-scores and enqueues payouts.

Responsibility:
    Accepts payout requests, rejects the ones that break payout limits or
    exceed the account's ledger balance, scores the rest, and inserts them
    as ``pending`` rows for the processor.

Invariants enforced:
    - amount >= min_payout (MinimumPayoutError).
    - Instant payouts: amount <= instant_max (InstantPayoutLimitError).
    - Ledger balance >= amount (InsufficientBalanceError).
    - Every payout is inserted ``pending`` regardless of risk.  Payouts at
      or above the hold threshold are left out of batch selection until a
      reviewer releases them.

Scheduling:
    Explicit ``scheduled_for`` wins; instant payouts are due immediately;
    everything else waits for the next daily batch window at
    ``batch_time_utc``.
"""

from datetime import datetime, timedelta
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.dtos import PayoutRecord
from treasury_kernel.domain.policies import TreasuryPolicy
from treasury_kernel.domain.schedule import next_batch_window
from treasury_kernel.domain.values import PayoutStatus, PayoutType
from treasury_kernel.exceptions import (
    InstantPayoutLimitError,
    InsufficientBalanceError,
    MinimumPayoutError,
    PayoutNotFoundError,
    PayoutStateError,
    ValidationError,
)
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.models.audit_event import AuditEventType
from treasury_kernel.models.payout import Payout
from treasury_kernel.selectors.ledger_selector import LedgerSelector
from treasury_kernel.selectors.payout_selector import PayoutSelector
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.risk_scorer import RiskScorer

logger = get_logger("services.payout_scheduler")


class PayoutScheduler(BaseService[Payout]):
    """
    Payout queue writer.

    Contract:
        Validation failures raise before anything is written.
    """

    def __init__(
        self,
        session: Session,
        policy: TreasuryPolicy,
        clock: Clock | None = None,
        risk_scorer: RiskScorer | None = None,
        audit_log: AuditLog | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._risk = risk_scorer or RiskScorer(session, policy.risk, self._clock)
        self._audit = audit_log or AuditLog(session, self._clock)
        self._ledger = LedgerSelector(session)
        self._payouts = PayoutSelector(session)

    # =========================================================================
    # Enqueue
    # =========================================================================

    def _validate(self, account_id: str, amount: int, payout_type: PayoutType) -> None:
        if not account_id:
            raise ValidationError("Account id is required", field="account_id")
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise ValidationError(f"Amount must be an integer, got {amount!r}", field="amount")

        limits = self._policy.payout
        if amount < limits.min_payout:
            raise MinimumPayoutError(amount, limits.min_payout)
        if payout_type == PayoutType.INSTANT and amount > limits.instant_max:
            raise InstantPayoutLimitError(amount, limits.instant_max)

        # Pending and processing payouts have not debited the ledger yet.
        balance = self._ledger.get_account_balance(account_id)
        pending = self._payouts.get_pending_payout_amount(account_id)
        if balance - pending < amount:
            raise InsufficientBalanceError(account_id, balance, amount, pending=pending)

    def _resolve_schedule(
        self, payout_type: PayoutType, scheduled_for: datetime | None, now: datetime
    ) -> datetime:
        if scheduled_for is not None:
            if scheduled_for.tzinfo is None:
                raise ValidationError("scheduled_for must be timezone-aware", field="scheduled_for")
            return scheduled_for
        if payout_type == PayoutType.INSTANT:
            return now
        return next_batch_window(now, self._policy.payout.batch_time_utc)

    def queue_payout(
        self,
        account_id: str,
        amount: int,
        payout_type: PayoutType = PayoutType.SCHEDULED,
        scheduled_for: datetime | None = None,
        reference_ids: Sequence[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> PayoutRecord:
        """
        Validate, score and enqueue a payout.

        Raises:
            MinimumPayoutError: Below ``min_payout``.
            InstantPayoutLimitError: Instant payout above ``instant_max``.
            InsufficientBalanceError: Ledger balance below ``amount``.
        """
        payout_type = PayoutType(payout_type)
        with LogContext.bind(account_id=account_id):
            self._validate(account_id, amount, payout_type)

            now = self._clock.now()
            assessment = self._risk.assess(account_id, amount)

            payout_metadata = dict(metadata or {})
            if reference_ids:
                payout_metadata["reference_ids"] = list(reference_ids)
            payout_metadata["risk"] = assessment.to_dict()

            payout = Payout(
                id=uuid4(),
                account_id=account_id,
                amount=amount,
                currency=self._policy.currency,
                status=PayoutStatus.PENDING,
                payout_type=payout_type,
                risk_score=assessment.score,
                scheduled_for=self._resolve_schedule(payout_type, scheduled_for, now),
                initiated_at=now,
                attempt_count=0,
                payout_metadata=payout_metadata,
            )
            self.session.add(payout)
            self.session.flush()

            extra = {
                "payout_id": str(payout.id),
                "amount": amount,
                "payout_type": payout_type.value,
                "risk_score": str(assessment.score),
                "scheduled_for": payout.scheduled_for,
            }
            logger.info("payout_queued", extra=extra)
            self._audit.log_event(AuditEventType.PAYOUT_QUEUED, extra)

            if assessment.requires_review:
                logger.warning(
                    "payout_held_for_review",
                    extra={
                        "payout_id": str(payout.id),
                        "risk_score": str(assessment.score),
                        "hold_threshold": str(assessment.threshold),
                        "factors": [f.name for f in assessment.factors],
                    },
                )
                self._audit.log_event(
                    AuditEventType.PAYOUT_HELD,
                    {"payout_id": str(payout.id), **assessment.to_dict()},
                )

            return payout.to_dto()

    def request_instant_payout(
        self,
        account_id: str,
        amount: int,
        metadata: dict[str, Any] | None = None,
    ) -> PayoutRecord:
        """Instant payout, due immediately, subject to the instant ceiling."""
        limit = self._policy.payout.instant_max
        if isinstance(amount, int) and amount > limit:
            raise InstantPayoutLimitError(amount, limit)
        return self.queue_payout(
            account_id,
            amount,
            payout_type=PayoutType.INSTANT,
            metadata={**(metadata or {}), "requested_instant": True},
        )

    # =========================================================================
    # Review
    # =========================================================================

    def release_held_payout(self, payout_id: UUID | str, released_by: str) -> PayoutRecord:
        """
        Manually release a held payout so the next run picks it up.

        Raises:
            PayoutNotFoundError: Unknown payout.
            PayoutStateError: Payout is no longer pending.
        """
        if isinstance(payout_id, str):
            payout_id = UUID(payout_id)
        payout = self.session.get(Payout, payout_id)
        if payout is None:
            raise PayoutNotFoundError(str(payout_id))
        if payout.status != PayoutStatus.PENDING:
            raise PayoutStateError(str(payout_id), payout.status.value, "released")

        payout.released_at = self._clock.now()
        payout.released_by = released_by
        self.session.flush()

        logger.info(
            "payout_released",
            extra={"payout_id": str(payout_id), "released_by": released_by},
        )
        self._audit.log_event(
            AuditEventType.PAYOUT_RELEASED,
            {"payout_id": str(payout_id), "risk_score": str(payout.risk_score)},
            actor_id=released_by,
        )
        return payout.to_dto()

    def expire_held_payouts(self) -> list[PayoutRecord]:
        """
        Cancel held payouts older than ``review_timeout_days``.

        No-op when the timeout is not configured; held payouts then wait for
        manual review indefinitely.
        """
        timeout_days = self._policy.payout.review_timeout_days
        if timeout_days is None:
            return []

        now = self._clock.now()
        cutoff = now - timedelta(days=timeout_days)
        expired: list[PayoutRecord] = []
        for record in self._payouts.held_payouts(
            self._policy.risk.hold_threshold, initiated_before=cutoff
        ):
            payout = self.session.get(Payout, record.id)
            payout.status = PayoutStatus.CANCELLED
            payout.cancelled_at = now
            payout.failure_code = "review_timeout"
            payout.failure_message = f"Not released within {timeout_days} days"
            expired.append(payout.to_dto())
            self._audit.log_event(
                AuditEventType.PAYOUT_CANCELLED,
                {"payout_id": str(payout.id), "reason": "review_timeout"},
            )
        if expired:
            self.session.flush()
            logger.info("held_payouts_expired", extra={"count": len(expired)})
        return expired

    # =========================================================================
    # Queries
    # =========================================================================

    def get_account_payouts(self, account_id: str, limit: int = 20) -> list[PayoutRecord]:
        return self._payouts.get_account_payouts(account_id, limit)

    def get_pending_payout_amount(self, account_id: str) -> int:
        return self._payouts.get_pending_payout_amount(account_id)
