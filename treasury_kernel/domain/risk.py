"""
Risk scoring -- pure additive model.

RiskScorer (services) gathers the inputs from the database; this module
turns them into a score.  Every factor that fired is recorded on the
assessment so held payouts can be explained to reviewers.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from treasury_kernel.domain.policies import RiskPolicy
from treasury_kernel.domain.values import PayoutStatus


@dataclass(frozen=True)
class RiskFactor:
    name: str
    weight: Decimal


@dataclass(frozen=True)
class RiskAssessment:
    score: Decimal
    factors: tuple[RiskFactor, ...]
    threshold: Decimal

    @property
    def requires_review(self) -> bool:
        """True when the payout must wait for manual release."""
        return self.score >= self.threshold

    def to_dict(self) -> dict:
        return {
            "score": str(self.score),
            "threshold": str(self.threshold),
            "factors": {f.name: str(f.weight) for f in self.factors},
        }


def assess_risk(
    policy: RiskPolicy,
    *,
    amount: int,
    account_age_days: float | None,
    recent_statuses: Sequence[PayoutStatus],
    recent_dispute_count: int,
) -> RiskAssessment:
    """
    Score a prospective payout.

    Args:
        amount: Payout amount in minor units.
        account_age_days: Age of the payee account; None when the account is
            unknown to the payee registry, which counts as new.
        recent_statuses: Statuses of the most recent payouts, newest first,
            already limited to ``policy.history_window``.
        recent_dispute_count: Platform-wide disputes in the trailing window.
    """
    factors: list[RiskFactor] = []

    if account_age_days is None or account_age_days < policy.new_account_hold_days:
        factors.append(RiskFactor("new_account", policy.new_account_weight))

    if amount > policy.large_amount:
        factors.append(RiskFactor("large_amount", policy.large_amount_weight))
    if amount > policy.very_large_amount:
        factors.append(RiskFactor("very_large_amount", policy.very_large_amount_weight))

    if recent_statuses:
        failed = sum(1 for s in recent_statuses if s == PayoutStatus.FAILED)
        if failed:
            fraction = Decimal(failed) / Decimal(len(recent_statuses))
            factors.append(RiskFactor("failure_history", fraction * policy.failure_weight))
    else:
        factors.append(RiskFactor("no_history", policy.no_history_weight))

    if recent_dispute_count > 0:
        weight = min(policy.dispute_weight * recent_dispute_count, policy.dispute_cap)
        factors.append(RiskFactor("recent_disputes", weight))

    raw = sum((f.weight for f in factors), Decimal(0))
    score = min(raw, policy.max_score).quantize(Decimal("0.0001"))
    return RiskAssessment(score=score, factors=tuple(factors), threshold=policy.hold_threshold)
