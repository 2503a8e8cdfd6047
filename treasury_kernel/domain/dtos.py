"""
DTOs -- immutable records returned across the kernel boundary.

ORM rows stay inside services and selectors.  Callers and tests receive
these frozen dataclasses, built with the models' ``to_dto()`` methods or
directly by services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from treasury_kernel.domain.values import (
    EntityType,
    EntryKind,
    EventSource,
    PayoutStatus,
    PayoutType,
    RecipientOutcome,
    RecipientRole,
)


# =============================================================================
# Ledger
# =============================================================================


@dataclass(frozen=True)
class LedgerEntryRecord:
    id: UUID
    account_id: str
    amount: int
    currency: str
    kind: EntryKind
    event_source: EventSource
    correlation_id: UUID
    reference_id: str | None
    description: str | None
    metadata: dict[str, Any]
    created_at: datetime

    @property
    def signed_amount(self) -> int:
        """Balance contribution: credits positive, debits negative."""
        return self.amount if self.kind == EntryKind.CREDIT else -self.amount


@dataclass(frozen=True)
class GlobalBalanceCheck:
    """Result of a whole-ledger zero-sum check."""

    is_balanced: bool
    total_imbalance: int
    total_debits: int
    total_credits: int


@dataclass(frozen=True)
class LedgerStats:
    total_entries: int
    distinct_accounts: int
    total_volume: int
    last_entry_at: datetime | None


# =============================================================================
# Splits
# =============================================================================


@dataclass(frozen=True)
class SplitRuleRecord:
    id: UUID
    owner_id: str
    name: str
    entity_type: EntityType
    entity_id: str | None
    recipients: tuple[dict[str, Any], ...]
    is_default: bool
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class RecipientResult:
    """Outcome of one recipient's share during split application."""

    role: RecipientRole
    percent: Decimal
    amount: int
    outcome: RecipientOutcome
    account_id: str | None = None
    correlation_id: str | None = None
    payout_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "percent": str(self.percent),
            "amount": self.amount,
            "outcome": self.outcome.value,
            "account_id": self.account_id,
            "correlation_id": self.correlation_id,
            "payout_id": self.payout_id,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecipientResult:
        return cls(
            role=RecipientRole(data["role"]),
            percent=Decimal(data["percent"]),
            amount=int(data["amount"]),
            outcome=RecipientOutcome(data["outcome"]),
            account_id=data.get("account_id"),
            correlation_id=data.get("correlation_id"),
            payout_id=data.get("payout_id"),
            error_code=data.get("error_code"),
            error_message=data.get("error_message"),
        )


@dataclass(frozen=True)
class SplitApplicationResult:
    """
    Result of SplitApplier.apply_splits().

    ``rule_source`` is ``entity``, ``type_default`` or ``platform_default``
    depending on which tier of the rule lookup matched.  A repeated call for
    the same purchase returns the stored result with ``already_applied``.
    """

    purchase_id: str
    amount: int
    entity_type: EntityType
    entity_id: str | None
    rule_source: str
    recipients: tuple[RecipientResult, ...]
    already_applied: bool = False

    @property
    def failures(self) -> tuple[RecipientResult, ...]:
        return tuple(
            r for r in self.recipients if r.outcome == RecipientOutcome.FAILED
        )

    @property
    def credited_total(self) -> int:
        return sum(
            r.amount
            for r in self.recipients
            if r.outcome in (RecipientOutcome.APPLIED, RecipientOutcome.CREDITED)
        )

    def amount_for(self, role: RecipientRole) -> int:
        return sum(r.amount for r in self.recipients if r.role == role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "purchase_id": self.purchase_id,
            "amount": self.amount,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "rule_source": self.rule_source,
            "recipients": [r.to_dict() for r in self.recipients],
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], already_applied: bool = False
    ) -> SplitApplicationResult:
        return cls(
            purchase_id=data["purchase_id"],
            amount=int(data["amount"]),
            entity_type=EntityType(data["entity_type"]),
            entity_id=data.get("entity_id"),
            rule_source=data["rule_source"],
            recipients=tuple(RecipientResult.from_dict(r) for r in data["recipients"]),
            already_applied=already_applied,
        )


# =============================================================================
# Payouts
# =============================================================================


@dataclass(frozen=True)
class PayoutRecord:
    id: UUID
    account_id: str
    amount: int
    currency: str
    status: PayoutStatus
    payout_type: PayoutType
    risk_score: Decimal
    scheduled_for: datetime
    initiated_at: datetime
    external_transfer_id: str | None = None
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    attempt_count: int = 0
    released_at: datetime | None = None
    released_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PayoutRunResult:
    """Summary of one process_due_payouts() run."""

    run_at: datetime
    selected: int
    completed: int
    failed: int
    completed_ids: tuple[str, ...] = ()
    failed_ids: tuple[str, ...] = ()
    skipped_ids: tuple[str, ...] = ()

    @property
    def skipped(self) -> int:
        return len(self.skipped_ids)
