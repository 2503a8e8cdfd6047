"""
LedgerService -- writes to the append-only double-entry ledger.

Responsibility:
    Creates ledger entries, almost always as debit/credit pairs sharing a
    correlation id, and exposes the derived-balance reads of LedgerSelector
    for callers that hold only a service.

Architecture position:
    Kernel > Services.  Leaf of the treasury call graph: SplitApplier,
    PayoutScheduler and PayoutProcessor all write through this service.

Invariants enforced:
    - amount > 0 on every entry.
    - Pairing: create_paired_entries() flushes both rows inside one
      SAVEPOINT.  A failure rolls back the savepoint and raises
      LedgerConsistencyError, so an orphaned half-pair is never visible.
    - Zero-sum follows from pairing; validate_global_balance() reports but
      never corrects a violation.

Failure modes:
    - ValidationError for non-positive amounts or identical accounts.
    - LedgerConsistencyError when the paired flush fails.
"""

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.dtos import (
    GlobalBalanceCheck,
    LedgerEntryRecord,
    LedgerStats,
)
from treasury_kernel.domain.policies import TreasuryPolicy
from treasury_kernel.domain.values import EntryKind, EventSource
from treasury_kernel.exceptions import LedgerConsistencyError, ValidationError
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.models.audit_event import AuditEventType
from treasury_kernel.models.ledger import LedgerEntry
from treasury_kernel.selectors.ledger_selector import LedgerSelector
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.base import BaseService

logger = get_logger("services.ledger")


def _validate_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValidationError(
            f"Amount must be an integer number of minor units, got {amount!r}",
            field="amount",
        )
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}", field="amount")


class LedgerService(BaseService[LedgerEntry]):
    """
    Ledger write path.

    Contract:
        All writes flush within the caller's transaction.  Timestamps come
        from the injected clock.
    """

    def __init__(
        self,
        session: Session,
        policy: TreasuryPolicy,
        clock: Clock | None = None,
        audit_log: AuditLog | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLog(session, self._clock)
        self._selector = LedgerSelector(session)

    # =========================================================================
    # Writes
    # =========================================================================

    def _build_entry(
        self,
        account_id: str,
        amount: int,
        kind: EntryKind,
        event_source: EventSource,
        correlation_id: UUID,
        reference_id: str | None,
        description: str | None,
        metadata: dict[str, Any] | None,
        currency: str | None,
    ) -> LedgerEntry:
        return LedgerEntry(
            id=uuid4(),
            account_id=account_id,
            amount=amount,
            currency=currency or self._policy.currency,
            kind=EntryKind(kind),
            event_source=EventSource(event_source),
            correlation_id=correlation_id,
            reference_id=reference_id,
            description=description,
            entry_metadata=dict(metadata or {}),
            created_at=self._clock.now(),
        )

    def create_entry(
        self,
        account_id: str,
        amount: int,
        kind: EntryKind,
        event_source: EventSource,
        correlation_id: UUID | None = None,
        reference_id: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        currency: str | None = None,
    ) -> LedgerEntryRecord:
        """
        Append a single ledger entry.

        This is the primitive under create_paired_entries().  Writing a lone
        entry leaves its correlation id unpaired until the counter-entry is
        written with the same id.
        """
        _validate_amount(amount)
        entry = self._build_entry(
            account_id,
            amount,
            kind,
            event_source,
            correlation_id or uuid4(),
            reference_id,
            description,
            metadata,
            currency,
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "ledger_entry_created",
            extra={
                "account_id": account_id,
                "amount": amount,
                "kind": entry.kind.value,
                "event_source": entry.event_source.value,
                "entry_correlation_id": str(entry.correlation_id),
            },
        )
        return entry.to_dto()

    def create_paired_entries(
        self,
        debit_account_id: str,
        credit_account_id: str,
        amount: int,
        event_source: EventSource,
        reference_id: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        currency: str | None = None,
        correlation_id: UUID | None = None,
    ) -> UUID:
        """
        Move ``amount`` from ``debit_account_id`` to ``credit_account_id``.

        Returns:
            The correlation id shared by the two entries.

        Raises:
            ValidationError: Non-positive amount or identical accounts.
            LedgerConsistencyError: The pair could not be flushed; neither
                entry was written.
        """
        _validate_amount(amount)
        if debit_account_id == credit_account_id:
            raise ValidationError(
                f"Debit and credit account must differ, got {debit_account_id}",
                field="credit_account_id",
            )

        correlation_id = correlation_id or uuid4()
        entries = [
            self._build_entry(
                account_id,
                amount,
                kind,
                event_source,
                correlation_id,
                reference_id,
                description,
                metadata,
                currency,
            )
            for account_id, kind in (
                (debit_account_id, EntryKind.DEBIT),
                (credit_account_id, EntryKind.CREDIT),
            )
        ]

        savepoint = self.session.begin_nested()
        try:
            self.session.add_all(entries)
            self.session.flush()
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.error(
                "paired_entries_failed",
                extra={
                    "entry_correlation_id": str(correlation_id),
                    "debit_account_id": debit_account_id,
                    "credit_account_id": credit_account_id,
                    "amount": amount,
                },
                exc_info=True,
            )
            raise LedgerConsistencyError(str(correlation_id), str(exc)) from exc

        logger.info(
            "paired_entries_created",
            extra={
                "entry_correlation_id": str(correlation_id),
                "debit_account_id": debit_account_id,
                "credit_account_id": credit_account_id,
                "amount": amount,
                "event_source": EventSource(event_source).value,
                "reference_id": reference_id,
            },
        )
        return correlation_id

    def record_charge(
        self,
        purchaser_account_id: str,
        amount: int,
        purchase_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """Captured payment: purchaser -> platform reserve."""
        with LogContext.bind(purchase_id=purchase_id):
            return self.create_paired_entries(
                debit_account_id=purchaser_account_id,
                credit_account_id=self._policy.platform_reserve_account,
                amount=amount,
                event_source=EventSource.CHARGE,
                reference_id=purchase_id,
                description=f"Charge for purchase {purchase_id}",
                metadata=metadata,
            )

    def record_refund(
        self,
        purchaser_account_id: str,
        amount: int,
        refund_id: str,
        purchase_id: str | None = None,
    ) -> UUID:
        """Refund: platform reserve -> purchaser."""
        metadata = {"purchase_id": purchase_id} if purchase_id else None
        return self.create_paired_entries(
            debit_account_id=self._policy.platform_reserve_account,
            credit_account_id=purchaser_account_id,
            amount=amount,
            event_source=EventSource.REFUND,
            reference_id=refund_id,
            description=f"Refund {refund_id}",
            metadata=metadata,
        )

    def record_attribution(
        self,
        referrer_account_id: str,
        amount: int,
        reference_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """Referral reward: platform reserve -> referrer."""
        return self.create_paired_entries(
            debit_account_id=self._policy.platform_reserve_account,
            credit_account_id=referrer_account_id,
            amount=amount,
            event_source=EventSource.ATTRIBUTION,
            reference_id=reference_id,
            description=f"Attribution {reference_id}",
            metadata=metadata,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_account_balance(self, account_id: str) -> int:
        return self._selector.get_account_balance(account_id)

    def get_paired_entries(self, correlation_id: UUID | str) -> list[LedgerEntryRecord]:
        return self._selector.get_paired_entries(correlation_id)

    def get_account_transactions(
        self, account_id: str, limit: int = 50, offset: int = 0
    ) -> list[LedgerEntryRecord]:
        return self._selector.get_account_transactions(account_id, limit, offset)

    def get_entries_by_reference(self, reference_id: str) -> list[LedgerEntryRecord]:
        """Every entry written for a purchase or payout id, oldest first."""
        return self._selector.get_entries_by_reference(reference_id)

    def get_ledger_stats(self) -> LedgerStats:
        return self._selector.get_ledger_stats()

    def validate_global_balance(self) -> GlobalBalanceCheck:
        """
        Zero-sum check over the whole ledger.

        An imbalance is logged at ERROR and audited, and left for a human to
        investigate.
        """
        check = self._selector.validate_global_balance()
        if not check.is_balanced:
            logger.error(
                "ledger_imbalance_detected",
                extra={
                    "total_imbalance": check.total_imbalance,
                    "total_debits": check.total_debits,
                    "total_credits": check.total_credits,
                },
            )
            self._audit.log_event(
                AuditEventType.LEDGER_IMBALANCE_DETECTED,
                {
                    "total_imbalance": check.total_imbalance,
                    "total_debits": check.total_debits,
                    "total_credits": check.total_credits,
                },
            )
        return check
