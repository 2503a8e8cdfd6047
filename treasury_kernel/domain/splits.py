"""
Split arithmetic -- pure functions, zero I/O.

Invariants enforced:
    - Split rules sum to exactly 100 percent (validate_split_shares).
    - Conservation: calculate_splits() always returns amounts that sum to
      the purchase total.  Each share is floored; the residue goes to the
      platform recipient, or to an extra platform-reserve line when no
      platform recipient was resolved.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from treasury_kernel.domain.policies import SplitShare
from treasury_kernel.domain.values import RecipientRole
from treasury_kernel.exceptions import SplitPercentageError, ValidationError

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class ResolvedRecipient:
    """A split share mapped to a concrete ledger account."""

    account_id: str
    role: RecipientRole
    percent: Decimal


@dataclass(frozen=True)
class ComputedSplit:
    account_id: str
    role: RecipientRole
    percent: Decimal
    amount: int

    @property
    def is_platform(self) -> bool:
        return self.role == RecipientRole.PLATFORM


def validate_split_shares(shares: Sequence[SplitShare]) -> None:
    """
    Raise SplitPercentageError unless ``shares`` is a valid split table.

    Every percent must be positive and the total must be exactly 100.
    """
    if not shares:
        raise SplitPercentageError(Decimal(0), "Split rule needs at least one recipient")
    for share in shares:
        if share.percent <= 0 or share.percent > HUNDRED:
            raise SplitPercentageError(
                sum((s.percent for s in shares), Decimal(0)),
                f"Recipient percent out of range: {share.percent}",
            )
    total = sum((s.percent for s in shares), Decimal(0))
    if total != HUNDRED:
        raise SplitPercentageError(total)


def calculate_splits(
    total: int,
    recipients: Iterable[ResolvedRecipient],
    reserve_account: str,
) -> tuple[ComputedSplit, ...]:
    """
    Divide ``total`` minor units across ``recipients``.

    Each amount is ``floor(total * percent / 100)``.  The residue lands on
    the first platform recipient; if there is none and the residue is
    positive, an extra platform line for ``reserve_account`` carries it.
    """
    if total < 0:
        raise ValidationError(f"Split total must be non-negative, got {total}", field="amount")

    splits = [
        ComputedSplit(
            account_id=r.account_id,
            role=r.role,
            percent=r.percent,
            amount=int((Decimal(total) * r.percent) // HUNDRED),
        )
        for r in recipients
    ]

    residue = total - sum(s.amount for s in splits)
    if residue == 0:
        return tuple(splits)

    for i, split in enumerate(splits):
        if split.is_platform:
            splits[i] = ComputedSplit(
                account_id=split.account_id,
                role=split.role,
                percent=split.percent,
                amount=split.amount + residue,
            )
            return tuple(splits)

    splits.append(
        ComputedSplit(
            account_id=reserve_account,
            role=RecipientRole.PLATFORM,
            percent=Decimal(0),
            amount=residue,
        )
    )
    return tuple(splits)
