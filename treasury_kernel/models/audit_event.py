"""
Module: treasury_kernel.models.audit_event
Responsibility: ORM persistence for the treasury audit log.
Architecture position: Kernel > Models.

Invariants enforced:
    - Append-only; no UPDATE or DELETE (db/immutability.py).

Audit relevance:
    Split applications, payout transitions, held payouts and ledger
    imbalances each produce an AuditEvent.  Writing one never fails the
    operation that produced it (services.audit_log).
"""

from datetime import datetime

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base


class AuditEventType:
    """Event type names written by kernel services."""

    SPLITS_APPLIED = "splits_applied"
    SPLIT_RECIPIENT_FAILED = "split_recipient_failed"
    SPLIT_RULE_CREATED = "split_rule_created"
    SPLIT_RULE_DEACTIVATED = "split_rule_deactivated"
    PAYOUT_QUEUED = "payout_queued"
    PAYOUT_HELD = "payout_held"
    PAYOUT_RELEASED = "payout_released"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_SETTLEMENT_FAILED = "payout_settlement_failed"
    PAYOUT_FAILED = "payout_failed"
    PAYOUT_CANCELLED = "payout_cancelled"
    PAYOUT_RUN_COMPLETED = "payout_run_completed"
    LEDGER_IMBALANCE_DETECTED = "ledger_imbalance_detected"
    DISPUTE_RECORDED = "dispute_recorded"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_event_type", "event_type"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.event_type} at {self.occurred_at}>"
