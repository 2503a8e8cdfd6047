"""
Module: treasury_kernel.selectors.payout_selector
Responsibility: Read-only payout queue queries: due batch selection, held
    payouts, per-account history and outstanding amounts.
Architecture position: Kernel > Selectors.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from treasury_kernel.domain.dtos import PayoutRecord
from treasury_kernel.domain.values import PayoutStatus
from treasury_kernel.models.payout import Payout
from treasury_kernel.selectors.base import BaseSelector


class PayoutSelector(BaseSelector[Payout]):
    """Selector for the payout queue."""

    def get(self, payout_id: UUID | str) -> PayoutRecord | None:
        if isinstance(payout_id, str):
            payout_id = UUID(payout_id)
        payout = self.session.get(Payout, payout_id)
        return payout.to_dto() if payout is not None else None

    def due_payout_ids(
        self,
        now: datetime,
        hold_threshold: Decimal,
        limit: int,
    ) -> list[UUID]:
        """
        IDs of payouts eligible for the next run.

        Pending, scheduled at or before ``now``, and either below the hold
        threshold or manually released.  Oldest schedule first.
        """
        return list(
            self.session.scalars(
                select(Payout.id)
                .where(
                    Payout.status == PayoutStatus.PENDING,
                    Payout.scheduled_for <= now,
                    or_(
                        Payout.risk_score < hold_threshold,
                        Payout.released_at.is_not(None),
                    ),
                )
                .order_by(Payout.scheduled_for, Payout.initiated_at)
                .limit(limit)
            ).all()
        )

    def held_payouts(
        self,
        hold_threshold: Decimal,
        initiated_before: datetime | None = None,
    ) -> list[PayoutRecord]:
        """Pending payouts at or above the hold threshold awaiting release."""
        query = select(Payout).where(
            Payout.status == PayoutStatus.PENDING,
            Payout.risk_score >= hold_threshold,
            Payout.released_at.is_(None),
        )
        if initiated_before is not None:
            query = query.where(Payout.initiated_at < initiated_before)
        rows = self.session.scalars(query.order_by(Payout.initiated_at)).all()
        return [r.to_dto() for r in rows]

    def get_account_payouts(self, account_id: str, limit: int = 20) -> list[PayoutRecord]:
        """Payouts for ``account_id``, newest first."""
        rows = self.session.scalars(
            select(Payout)
            .where(Payout.account_id == account_id)
            .order_by(Payout.initiated_at.desc())
            .limit(limit)
        ).all()
        return [r.to_dto() for r in rows]

    def recent_statuses(self, account_id: str, window: int) -> list[PayoutStatus]:
        """Statuses of the last ``window`` payouts for the account, newest first."""
        return list(
            self.session.scalars(
                select(Payout.status)
                .where(Payout.account_id == account_id)
                .order_by(Payout.initiated_at.desc())
                .limit(window)
            ).all()
        )

    def get_pending_payout_amount(self, account_id: str) -> int:
        """Sum of payouts still pending or processing for the account."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Payout.amount), 0)).where(
                Payout.account_id == account_id,
                Payout.status.in_([PayoutStatus.PENDING, PayoutStatus.PROCESSING]),
            )
        ).scalar_one()
        return int(total)
