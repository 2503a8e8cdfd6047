"""
Tests for treasury_kernel.domain.risk -- the additive risk model.
"""

from decimal import Decimal

import pytest

from treasury_kernel.domain.policies import RiskPolicy
from treasury_kernel.domain.risk import assess_risk
from treasury_kernel.domain.values import PayoutStatus

COMPLETED = PayoutStatus.COMPLETED
FAILED = PayoutStatus.FAILED


@pytest.fixture
def risk_policy():
    return RiskPolicy()


def _assess(policy, amount=10_000, age=365, statuses=(COMPLETED,), disputes=0):
    return assess_risk(
        policy,
        amount=amount,
        account_age_days=age,
        recent_statuses=list(statuses),
        recent_dispute_count=disputes,
    )


class TestFactors:
    def test_established_account_scores_zero(self, risk_policy):
        assessment = _assess(risk_policy)
        assert assessment.score == Decimal("0")
        assert assessment.factors == ()
        assert not assessment.requires_review

    def test_new_account(self, risk_policy):
        assessment = _assess(risk_policy, age=3)
        assert assessment.score == Decimal("0.5")
        assert [f.name for f in assessment.factors] == ["new_account"]

    def test_unknown_account_counts_as_new(self, risk_policy):
        assessment = _assess(risk_policy, age=None)
        assert "new_account" in [f.name for f in assessment.factors]

    def test_account_exactly_hold_days_old_is_not_new(self, risk_policy):
        assessment = _assess(risk_policy, age=7)
        assert assessment.score == Decimal("0")

    def test_large_amount_thresholds_are_exclusive(self, risk_policy):
        assert _assess(risk_policy, amount=50_000).score == Decimal("0")
        assert _assess(risk_policy, amount=50_001).score == Decimal("0.2")
        assert _assess(risk_policy, amount=100_000).score == Decimal("0.2")
        assert _assess(risk_policy, amount=100_001).score == Decimal("0.4")

    def test_no_history(self, risk_policy):
        assessment = _assess(risk_policy, statuses=())
        assert assessment.score == Decimal("0.1")

    def test_failure_history_is_proportional(self, risk_policy):
        assessment = _assess(risk_policy, statuses=(FAILED, COMPLETED, COMPLETED, FAILED))
        # 2 of 4 failed -> 0.5 * 0.3
        assert assessment.score == Decimal("0.15")

    def test_disputes_are_capped(self, risk_policy):
        assert _assess(risk_policy, disputes=2).score == Decimal("0.2")
        assert _assess(risk_policy, disputes=10).score == Decimal("0.3")


class TestScore:
    def test_new_account_large_payout_is_held(self, risk_policy):
        assessment = _assess(risk_policy, amount=120_000, age=0, statuses=())
        # 0.5 new + 0.2 large + 0.2 very large + 0.1 no history
        assert assessment.score == Decimal("1.0000")
        assert assessment.requires_review

    def test_score_capped_at_max(self, risk_policy):
        assessment = _assess(
            risk_policy, amount=500_000, age=0, statuses=(FAILED,), disputes=5
        )
        assert assessment.score == Decimal("1.0000")

    def test_score_is_quantized(self, risk_policy):
        assessment = _assess(risk_policy, statuses=(FAILED, COMPLETED, COMPLETED))
        assert assessment.score == Decimal("0.1000")
        assert assessment.score.as_tuple().exponent == -4

    def test_threshold_is_inclusive(self):
        policy = RiskPolicy(hold_threshold=Decimal("0.5"))
        assert _assess(policy, age=0).requires_review

    def test_custom_weights(self):
        policy = RiskPolicy(new_account_weight=Decimal("0.9"), hold_threshold=Decimal("0.8"))
        assessment = _assess(policy, age=1)
        assert assessment.score == Decimal("0.9")
        assert assessment.requires_review

    def test_to_dict(self, risk_policy):
        data = _assess(risk_policy, age=0, statuses=()).to_dict()
        assert data == {
            "score": "0.6000",
            "threshold": "0.7",
            "factors": {"new_account": "0.5", "no_history": "0.1"},
        }
