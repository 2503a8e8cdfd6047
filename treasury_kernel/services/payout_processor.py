"""
PayoutProcessor -- moves queued payouts through the payment processor.

Responsibility:
    Selects due, low-risk (or manually released) payouts, claims each one
    with an atomic check-and-set, calls the payment processor, and records
    the outcome on the payout row and in the ledger.

Architecture position:
    Kernel > Services.  Driven by treasury_batch.PayoutBatchScheduler once
    per batch window; admin tooling may call process_one() or
    cancel_payout() directly.

Invariants enforced:
    - Forward-only status.  ``pending -> processing`` is a single
      ``UPDATE ... WHERE status = 'pending'``; zero rows updated means
      another runner already holds the payout (PayoutStateError).
    - Batch isolation.  Each payout in a run is processed inside its own
      SAVEPOINT; one payout's failure never aborts the run.
    - A completed payout debits the recipient and credits the payout
      clearing account, so the recipient's derived balance falls by the
      amount paid.
    - Transfers reuse the idempotency key ``payout-<id>`` across retries.

Failure modes:
    - No enabled destination at claim time.  The payout is marked
      ``failed`` with ``destination_unavailable`` so it cannot occupy the
      head of every later batch.
    - PayoutTransferError: permanent processor failure, retries exhausted
      or timeout (``transfer_timeout``).  The payout is marked ``failed``
      with the code and message, then the error is re-raised.
    - Settlement ledger write fails after a successful transfer.  The
      money has moved, so the payout stays ``completed``; the failure is
      logged at ERROR and audited as ``payout_settlement_failed`` for
      reconciliation.
"""

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.dtos import PayoutRecord, PayoutRunResult
from treasury_kernel.domain.policies import TreasuryPolicy
from treasury_kernel.domain.ports import PaymentProcessor
from treasury_kernel.domain.values import EventSource, PayoutStatus
from treasury_kernel.exceptions import (
    LedgerConsistencyError,
    PayoutDestinationError,
    PayoutNotFoundError,
    PayoutStateError,
    PayoutTransferError,
    TreasuryKernelError,
)
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.models.audit_event import AuditEventType
from treasury_kernel.models.payout import Payout
from treasury_kernel.selectors.payout_selector import PayoutSelector
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.payee_service import PayeeService

logger = get_logger("services.payout_processor")


def _as_uuid(payout_id: UUID | str) -> UUID:
    return payout_id if isinstance(payout_id, UUID) else UUID(str(payout_id))


class PayoutProcessor(BaseService[Payout]):
    """
    Executes payouts.

    Contract:
        Flushes within the caller's transaction.  ``sleep`` is injected so
        retry backoff can be observed without waiting in tests.
    """

    def __init__(
        self,
        session: Session,
        policy: TreasuryPolicy,
        payment_processor: PaymentProcessor,
        clock: Clock | None = None,
        payees: PayeeService | None = None,
        ledger: LedgerService | None = None,
        audit_log: AuditLog | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(session)
        self._policy = policy
        self._processor = payment_processor
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLog(session, self._clock)
        self._payees = payees or PayeeService(session, self._clock)
        self._ledger = ledger or LedgerService(session, policy, self._clock, self._audit)
        self._selector = PayoutSelector(session)
        self._sleep = sleep

    # =========================================================================
    # Batch run
    # =========================================================================

    def process_due_payouts(self) -> PayoutRunResult:
        """
        Process up to ``batch_size`` due payouts, oldest schedule first.

        Failures are counted and logged; they never abort the run.
        """
        now = self._clock.now()
        payout_ids = self._selector.due_payout_ids(
            now,
            self._policy.risk.hold_threshold,
            self._policy.payout.batch_size,
        )
        logger.info("payout_run_started", extra={"selected": len(payout_ids)})

        completed: list[str] = []
        failed: list[str] = []
        skipped: list[str] = []

        for payout_id in payout_ids:
            savepoint = self.session.begin_nested()
            try:
                self.process_one(payout_id)
            except PayoutTransferError:
                # Keep the failed status written by process_one
                savepoint.commit()
                failed.append(str(payout_id))
            except PayoutStateError as exc:
                savepoint.rollback()
                logger.warning(
                    "payout_skipped",
                    extra={"payout_id": str(payout_id), "error_code": exc.code},
                )
                skipped.append(str(payout_id))
            except (TreasuryKernelError, SQLAlchemyError):
                savepoint.rollback()
                logger.exception("payout_processing_error", extra={"payout_id": str(payout_id)})
                failed.append(str(payout_id))
            else:
                savepoint.commit()
                completed.append(str(payout_id))

        result = PayoutRunResult(
            run_at=now,
            selected=len(payout_ids),
            completed=len(completed),
            failed=len(failed),
            completed_ids=tuple(completed),
            failed_ids=tuple(failed),
            skipped_ids=tuple(skipped),
        )
        logger.info(
            "payout_run_completed",
            extra={
                "selected": result.selected,
                "completed": result.completed,
                "failed": result.failed,
                "skipped": result.skipped,
            },
        )
        self._audit.log_event(
            AuditEventType.PAYOUT_RUN_COMPLETED,
            {
                "run_at": now,
                "selected": result.selected,
                "completed": result.completed,
                "failed": result.failed,
                "skipped": result.skipped,
            },
        )
        return result

    # =========================================================================
    # Single payout
    # =========================================================================

    def _get(self, payout_id: UUID) -> Payout:
        payout = self.session.get(Payout, payout_id)
        if payout is None:
            raise PayoutNotFoundError(str(payout_id))
        return payout

    def _compare_and_set(
        self,
        payout_id: UUID,
        expected: PayoutStatus,
        target: PayoutStatus,
        **values,
    ) -> bool:
        result = self.session.execute(
            update(Payout)
            .where(Payout.id == payout_id, Payout.status == expected)
            .values(status=target, **values)
        )
        return result.rowcount == 1

    def process_one(self, payout_id: UUID | str) -> PayoutRecord:
        """
        Claim, transfer and settle a single payout.

        Raises:
            PayoutNotFoundError: Unknown payout.
            PayoutStateError: Payout is not ``pending`` (or was claimed by
                another runner first).
            PayoutTransferError: Transfer failed or no enabled destination
                (``destination_unavailable``); payout is ``failed``.
        """
        payout_id = _as_uuid(payout_id)
        with LogContext.bind(payout_id=str(payout_id)):
            payout = self._get(payout_id)
            if payout.status != PayoutStatus.PENDING:
                raise PayoutStateError(
                    str(payout_id), payout.status.value, PayoutStatus.PROCESSING.value
                )

            if not self._compare_and_set(
                payout_id,
                PayoutStatus.PENDING,
                PayoutStatus.PROCESSING,
                processing_started_at=self._clock.now(),
            ):
                self.session.refresh(payout)
                raise PayoutStateError(
                    str(payout_id), payout.status.value, PayoutStatus.PROCESSING.value
                )
            self.session.refresh(payout)
            logger.info(
                "payout_processing_started",
                extra={"account_id": payout.account_id, "amount": payout.amount},
            )

            destination = self._destination_for(payout)
            transfer_id = self._transfer_with_retry(payout, destination)
            return self._settle(payout, transfer_id)

    def _destination_for(self, payout: Payout) -> str:
        try:
            return self._payees.get_destination(payout.account_id)
        except PayoutDestinationError as exc:
            error = PayoutTransferError(
                "destination_unavailable", str(exc), payout_id=str(payout.id)
            )
            self._mark_failed(payout, error)
            raise error from exc

    def _transfer_with_retry(self, payout: Payout, destination: str) -> str:
        retry = self._policy.retry
        attempt = 0
        while True:
            attempt += 1
            payout.attempt_count = attempt
            try:
                return self._transfer(payout, destination)
            except PayoutTransferError as exc:
                exc.payout_id = str(payout.id)
                if exc.retryable and attempt < retry.max_attempts:
                    delay = retry.delay_for(attempt)
                    logger.warning(
                        "payout_transfer_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": retry.max_attempts,
                            "delay_seconds": delay,
                            "failure_code": exc.failure_code,
                        },
                    )
                    self._sleep(delay)
                    continue
                self._mark_failed(payout, exc)
                raise

    def _transfer(self, payout: Payout, destination: str) -> str:
        metadata = {"payout_id": str(payout.id), "account_id": payout.account_id}
        idempotency_key = f"payout-{payout.id}"
        timeout = self._policy.payout.transfer_timeout_seconds

        def call() -> str:
            return self._processor.create_transfer(
                payout.amount,
                payout.currency,
                destination,
                metadata,
                idempotency_key,
            )

        try:
            if not timeout:
                return call()
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="payout-transfer")
            try:
                return executor.submit(call).result(timeout=timeout)
            finally:
                executor.shutdown(wait=False)
        except PayoutTransferError:
            raise
        except FutureTimeoutError as exc:
            raise PayoutTransferError(
                "transfer_timeout",
                f"Transfer did not complete within {timeout}s",
                retryable=True,
            ) from exc
        except Exception as exc:
            raise PayoutTransferError(None, str(exc) or type(exc).__name__) from exc

    def _mark_failed(self, payout: Payout, exc: PayoutTransferError) -> None:
        payout.status = PayoutStatus.FAILED
        payout.failure_code = exc.failure_code
        payout.failure_message = exc.failure_message
        self.session.flush()
        logger.error(
            "payout_failed",
            extra={
                "failure_code": exc.failure_code,
                "attempt_count": payout.attempt_count,
                "retryable": exc.retryable,
            },
        )
        self._audit.log_event(
            AuditEventType.PAYOUT_FAILED,
            {
                "payout_id": str(payout.id),
                "failure_code": exc.failure_code,
                "failure_message": exc.failure_message,
                "attempt_count": payout.attempt_count,
            },
        )

    def _settle(self, payout: Payout, transfer_id: str) -> PayoutRecord:
        # The transfer has happened; record it before touching the ledger.
        payout.status = PayoutStatus.COMPLETED
        payout.external_transfer_id = transfer_id
        payout.completed_at = self._clock.now()
        self.session.flush()

        try:
            self._ledger.create_paired_entries(
                debit_account_id=payout.account_id,
                credit_account_id=self._policy.payout_clearing_account,
                amount=payout.amount,
                event_source=EventSource.PAYOUT,
                reference_id=str(payout.id),
                description=f"Payout {payout.id}",
                metadata={"external_transfer_id": transfer_id},
                currency=payout.currency,
            )
        except LedgerConsistencyError as exc:
            logger.error(
                "payout_settlement_failed",
                extra={
                    "external_transfer_id": transfer_id,
                    "amount": payout.amount,
                    "correlation_id": exc.correlation_id,
                    "reason": exc.reason,
                },
            )
            self._audit.log_event(
                AuditEventType.PAYOUT_SETTLEMENT_FAILED,
                {
                    "payout_id": str(payout.id),
                    "account_id": payout.account_id,
                    "external_transfer_id": transfer_id,
                    "amount": payout.amount,
                    "reason": exc.reason,
                },
            )

        logger.info(
            "payout_completed",
            extra={
                "external_transfer_id": transfer_id,
                "amount": payout.amount,
                "attempt_count": payout.attempt_count,
            },
        )
        self._audit.log_event(
            AuditEventType.PAYOUT_COMPLETED,
            {
                "payout_id": str(payout.id),
                "external_transfer_id": transfer_id,
                "amount": payout.amount,
            },
        )
        return payout.to_dto()

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel_payout(
        self,
        payout_id: UUID | str,
        reason: str,
        cancelled_by: str | None = None,
    ) -> PayoutRecord:
        """
        Cancel a pending payout.

        Raises:
            PayoutNotFoundError: Unknown payout.
            PayoutStateError: Payout has left ``pending``.
        """
        payout_id = _as_uuid(payout_id)
        payout = self._get(payout_id)
        if not self._compare_and_set(
            payout_id,
            PayoutStatus.PENDING,
            PayoutStatus.CANCELLED,
            cancelled_at=self._clock.now(),
            failure_message=reason,
        ):
            self.session.refresh(payout)
            raise PayoutStateError(
                str(payout_id), payout.status.value, PayoutStatus.CANCELLED.value
            )
        self.session.refresh(payout)

        logger.info(
            "payout_cancelled",
            extra={"payout_id": str(payout_id), "reason": reason},
        )
        self._audit.log_event(
            AuditEventType.PAYOUT_CANCELLED,
            {"payout_id": str(payout_id), "reason": reason},
            actor_id=cancelled_by,
        )
        return payout.to_dto()
