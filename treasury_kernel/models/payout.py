"""
Module: treasury_kernel.models.payout
Responsibility: ORM persistence for the payout queue.
Architecture position: Kernel > Models.

Invariants enforced:
    - Status only moves forward (PayoutStatus.can_transition_to).  The
      pending -> processing step is an atomic check-and-set issued by
      PayoutProcessor, so two runners can never both claim a payout.
    - cancelled is reachable only from pending.

Failure modes:
    - Rows in ``processing`` after a crash stay there; they are never picked
      up again by the batch selection, which only reads ``pending``.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base
from treasury_kernel.domain.dtos import PayoutRecord
from treasury_kernel.domain.values import PayoutStatus, PayoutType
from treasury_kernel.models._types import enum_column_type


class Payout(Base):
    """A queued transfer of funds from the platform to a recipient."""

    __tablename__ = "payouts"

    __table_args__ = (
        Index("idx_payouts_due", "status", "scheduled_for"),
        Index("idx_payouts_account", "account_id", "initiated_at"),
    )

    account_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[PayoutStatus] = mapped_column(
        enum_column_type(PayoutStatus), nullable=False, default=PayoutStatus.PENDING
    )

    payout_type: Mapped[PayoutType] = mapped_column(
        enum_column_type(PayoutType), nullable=False, default=PayoutType.SCHEDULED
    )

    risk_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    external_transfer_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    scheduled_for: Mapped[datetime] = mapped_column(nullable=False)

    initiated_at: Mapped[datetime] = mapped_column(nullable=False)

    processing_started_at: Mapped[datetime | None] = mapped_column(nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    failure_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Manual release of a held (high-risk) payout
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)

    released_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    payout_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<Payout {self.id} {self.account_id} {self.amount} {self.status.value}>"

    @property
    def is_released(self) -> bool:
        return self.released_at is not None

    def to_dto(self) -> PayoutRecord:
        return PayoutRecord(
            id=self.id,
            account_id=self.account_id,
            amount=self.amount,
            currency=self.currency,
            status=self.status,
            payout_type=self.payout_type,
            risk_score=Decimal(self.risk_score),
            scheduled_for=self.scheduled_for,
            initiated_at=self.initiated_at,
            external_transfer_id=self.external_transfer_id,
            processing_started_at=self.processing_started_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            failure_code=self.failure_code,
            failure_message=self.failure_message,
            attempt_count=self.attempt_count,
            released_at=self.released_at,
            released_by=self.released_by,
            metadata=dict(self.payout_metadata or {}),
        )
