"""
PayeeService -- payout destination registry.

Tracks, per ledger account, when it was opened (read by the risk scorer)
and which processor account receives its payouts (read by the payout
processor).
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.exceptions import PayoutDestinationError, ValidationError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.payee import PayeeAccount
from treasury_kernel.services.base import BaseService

logger = get_logger("services.payee")


class PayeeService(BaseService[PayeeAccount]):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _find(self, account_id: str) -> PayeeAccount | None:
        return self.session.execute(
            select(PayeeAccount).where(PayeeAccount.account_id == account_id)
        ).scalar_one_or_none()

    def register_account(
        self,
        account_id: str,
        opened_at: datetime | None = None,
    ) -> PayeeAccount:
        """Register an account (idempotent).  An existing opened_at is kept."""
        payee = self._find(account_id)
        if payee is not None:
            return payee
        now = self._clock.now()
        payee = PayeeAccount(
            account_id=account_id,
            opened_at=opened_at or now,
            payouts_enabled=False,
            updated_at=now,
        )
        self.session.add(payee)
        self.session.flush()
        logger.info("payee_registered", extra={"account_id": account_id})
        return payee

    def register_destination(
        self,
        account_id: str,
        destination: str,
        payouts_enabled: bool = True,
    ) -> PayeeAccount:
        """Attach or replace the processor destination for an account."""
        if not destination:
            raise ValidationError("Destination must not be empty", field="destination")
        payee = self._find(account_id) or self.register_account(account_id)
        payee.destination = destination
        payee.payouts_enabled = payouts_enabled
        payee.updated_at = self._clock.now()
        self.session.flush()
        logger.info(
            "payee_destination_registered",
            extra={"account_id": account_id, "payouts_enabled": payouts_enabled},
        )
        return payee

    def set_payouts_enabled(self, account_id: str, enabled: bool) -> PayeeAccount:
        payee = self._find(account_id)
        if payee is None:
            raise PayoutDestinationError(account_id, "account not registered")
        payee.payouts_enabled = enabled
        payee.updated_at = self._clock.now()
        self.session.flush()
        return payee

    def get_destination(self, account_id: str) -> str:
        """
        Processor destination for ``account_id``.

        Raises:
            PayoutDestinationError: Unregistered, no destination, or payouts
                disabled.
        """
        payee = self._find(account_id)
        if payee is None:
            raise PayoutDestinationError(account_id, "account not registered")
        if not payee.destination:
            raise PayoutDestinationError(account_id, "no destination on file")
        if not payee.payouts_enabled:
            raise PayoutDestinationError(account_id, "payouts disabled")
        return payee.destination

    def get_account_age_days(self, account_id: str) -> float | None:
        """Days since the account was opened, or None if unregistered."""
        payee = self._find(account_id)
        if payee is None:
            return None
        delta = self._clock.now() - payee.opened_at
        return delta.total_seconds() / 86400
