"""DisputeService -- records chargebacks for the risk scorer."""

from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.exceptions import ValidationError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.audit_event import AuditEventType
from treasury_kernel.models.dispute import Dispute
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.base import BaseService

logger = get_logger("services.dispute")


class DisputeService(BaseService[Dispute]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLog | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLog(session, self._clock)

    def record_dispute(
        self,
        amount: int,
        *,
        external_id: str | None = None,
        purchase_id: str | None = None,
        account_id: str | None = None,
        reason: str | None = None,
        opened_at: datetime | None = None,
    ) -> Dispute:
        """Record a dispute.  A repeated ``external_id`` returns the existing row."""
        if amount < 0:
            raise ValidationError("Dispute amount must not be negative", field="amount")
        if external_id is not None:
            existing = self.session.execute(
                select(Dispute).where(Dispute.external_id == external_id)
            ).scalar_one_or_none()
            if existing is not None:
                return existing

        dispute = Dispute(
            external_id=external_id,
            purchase_id=purchase_id,
            account_id=account_id,
            amount=amount,
            reason=reason,
            opened_at=opened_at or self._clock.now(),
        )
        self.session.add(dispute)
        self.session.flush()
        logger.warning(
            "dispute_recorded",
            extra={"external_id": external_id, "purchase_id": purchase_id, "amount": amount},
        )
        self._audit.log_event(
            AuditEventType.DISPUTE_RECORDED,
            {"external_id": external_id, "purchase_id": purchase_id, "amount": amount},
        )
        return dispute

    def count_recent(self, window_days: int) -> int:
        """Platform-wide disputes opened in the trailing ``window_days``."""
        since = self._clock.now() - timedelta(days=window_days)
        return int(
            self.session.execute(
                select(func.count(Dispute.id)).where(Dispute.opened_at >= since)
            ).scalar_one()
        )
