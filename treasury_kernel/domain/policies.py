"""
Policies -- frozen configuration objects injected into every service.

The kernel never reads configuration files.  treasury_config parses YAML
into these dataclasses; tests construct them directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from treasury_kernel.domain.values import EntityType, RecipientRole


@dataclass(frozen=True)
class SplitShare:
    """One line of a split table: a role (or explicit account) and its percent."""

    role: RecipientRole
    percent: Decimal
    recipient_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.percent, Decimal):
            object.__setattr__(self, "percent", Decimal(str(self.percent)))
        if not isinstance(self.role, RecipientRole):
            object.__setattr__(self, "role", RecipientRole(self.role))

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "percent": str(self.percent),
            "recipient_id": self.recipient_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> SplitShare:
        return cls(
            role=RecipientRole(data["role"]),
            percent=Decimal(str(data["percent"])),
            recipient_id=data.get("recipient_id"),
        )


def _shares(*pairs: tuple[RecipientRole, int]) -> tuple[SplitShare, ...]:
    return tuple(SplitShare(role=r, percent=Decimal(p)) for r, p in pairs)


_EVENT_SPLIT = _shares(
    (RecipientRole.ARTIST, 70),
    (RecipientRole.PLATFORM, 20),
    (RecipientRole.HOST, 10),
)

DEFAULT_SPLIT_TABLES: Mapping[EntityType, tuple[SplitShare, ...]] = MappingProxyType(
    {
        EntityType.EVENT: _EVENT_SPLIT,
        EntityType.SUBSCRIPTION: _shares(
            (RecipientRole.ARTIST, 85),
            (RecipientRole.PLATFORM, 15),
        ),
        EntityType.TIP: _shares(
            (RecipientRole.ARTIST, 95),
            (RecipientRole.PLATFORM, 5),
        ),
    }
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for transient transfer failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        delay = self.base_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True)
class RiskPolicy:
    """
    Additive risk weights.

    Scores are Decimal so that threshold comparisons are exact.
    """

    new_account_hold_days: int = 7
    new_account_weight: Decimal = Decimal("0.5")
    large_amount: int = 50_000
    large_amount_weight: Decimal = Decimal("0.2")
    very_large_amount: int = 100_000
    very_large_amount_weight: Decimal = Decimal("0.2")
    history_window: int = 10
    failure_weight: Decimal = Decimal("0.3")
    no_history_weight: Decimal = Decimal("0.1")
    dispute_window_days: int = 30
    dispute_weight: Decimal = Decimal("0.1")
    dispute_cap: Decimal = Decimal("0.3")
    max_score: Decimal = Decimal("1.0")
    hold_threshold: Decimal = Decimal("0.7")


@dataclass(frozen=True)
class PayoutPolicy:
    """Limits and scheduling for the payout queue and processor."""

    min_payout: int = 2_500
    instant_max: int = 100_000
    batch_time_utc: time = time(2, 0)
    batch_size: int = 100
    transfer_timeout_seconds: float = 30.0
    review_timeout_days: int | None = None


@dataclass(frozen=True)
class TreasuryPolicy:
    """
    Root policy object handed to every kernel component.

    ``platform_reserve_account`` is the counter-party for every split and
    the sink for rounding residue.  ``payout_clearing_account`` receives the
    credit side when a completed payout leaves a recipient's balance.
    """

    platform_reserve_account: str = "platform_reserve"
    payout_clearing_account: str = "payout_clearing"
    currency: str = "usd"
    payout: PayoutPolicy = field(default_factory=PayoutPolicy)
    risk: RiskPolicy = field(default_factory=RiskPolicy)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    default_splits: Mapping[EntityType, tuple[SplitShare, ...]] = field(
        default_factory=lambda: DEFAULT_SPLIT_TABLES
    )

    def __post_init__(self) -> None:
        if self.platform_reserve_account == self.payout_clearing_account:
            raise ValueError("reserve and clearing accounts must differ")

    def default_split_for(self, entity_type: EntityType) -> tuple[SplitShare, ...]:
        """Platform default table; unknown entity types use the event table."""
        table = self.default_splits.get(entity_type)
        if table is None:
            table = self.default_splits.get(EntityType.EVENT, _EVENT_SPLIT)
        return table
