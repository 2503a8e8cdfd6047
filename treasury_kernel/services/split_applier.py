"""
SplitApplier -- divides a completed purchase among its recipients.

Responsibility:
    For one purchase: claim the purchase id, look up and resolve the split
    rule, compute amounts, write one paired ledger entry per non-platform
    recipient (reserve -> recipient) and enqueue that recipient's payout.

Architecture position:
    Kernel > Services.  Entry point called by checkout capture once the
    charge has been recorded.

Invariants enforced:
    - Idempotency: a ``split_applications`` row keyed by the UNIQUE
      purchase_id is inserted before any ledger write.  A repeated or
      concurrent call for the same purchase finds (or collides with) that
      row and returns the stored result without writing anything.
    - Conservation: split amounts sum to the purchase amount.
    - Recipient independence: each recipient's ledger write runs in its own
      SAVEPOINT and its payout enqueue in another.  A failure for one
      recipient is logged, audited and recorded on the result; the
      remaining recipients are still processed.

Failure modes:
    - ValidationError for an empty purchase id or non-positive amount.
    - A payout that cannot be queued (below minimum, limits) leaves the
      recipient's ledger credit in place; the balance is paid out by a
      later payout.
"""

from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.dtos import RecipientResult, SplitApplicationResult
from treasury_kernel.domain.policies import TreasuryPolicy
from treasury_kernel.domain.ports import RoleResolver
from treasury_kernel.domain.splits import ComputedSplit, calculate_splits
from treasury_kernel.domain.values import EntityType, EventSource, RecipientOutcome
from treasury_kernel.exceptions import (
    MinimumPayoutError,
    TreasuryKernelError,
    ValidationError,
)
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.models.audit_event import AuditEventType
from treasury_kernel.models.split_rule import SplitApplication
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.payout_scheduler import PayoutScheduler
from treasury_kernel.services.split_rule_service import SplitRuleService

logger = get_logger("services.split_applier")


class SplitApplier:
    """
    Applies revenue splits for completed purchases.

    Contract:
        Writes flush within the caller's transaction.  Collaborators are
        built from the session unless injected.
    """

    def __init__(
        self,
        session: Session,
        policy: TreasuryPolicy,
        role_resolver: RoleResolver,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
        rules: SplitRuleService | None = None,
        scheduler: PayoutScheduler | None = None,
        audit_log: AuditLog | None = None,
    ):
        self._session = session
        self._policy = policy
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLog(session, self._clock)
        self._ledger = ledger or LedgerService(session, policy, self._clock, self._audit)
        self._rules = rules or SplitRuleService(
            session, policy, role_resolver, self._clock, self._audit
        )
        self._scheduler = scheduler or PayoutScheduler(
            session, policy, self._clock, audit_log=self._audit
        )

    # =========================================================================
    # Idempotency record
    # =========================================================================

    def _find_application(self, purchase_id: str) -> SplitApplication | None:
        return self._session.execute(
            select(SplitApplication).where(SplitApplication.purchase_id == purchase_id)
        ).scalar_one_or_none()

    def _claim(
        self,
        purchase_id: str,
        amount: int,
        entity_type: EntityType,
        entity_id: str | None,
    ) -> SplitApplication | None:
        """Insert the idempotency row.  None if another call already holds it."""
        savepoint = self._session.begin_nested()
        try:
            application = SplitApplication(
                id=uuid4(),
                purchase_id=purchase_id,
                amount=amount,
                entity_type=entity_type,
                entity_id=entity_id,
                created_at=self._clock.now(),
            )
            self._session.add(application)
            self._session.flush()
            savepoint.commit()
            return application
        except IntegrityError:
            savepoint.rollback()
            logger.info("split_application_claim_conflict")
            return None

    def _replay(self, application: SplitApplication) -> SplitApplicationResult:
        logger.info("splits_already_applied")
        result = application.to_result(already_applied=True)
        if result is not None:
            return result
        # Claimed but never completed within the claiming transaction
        return SplitApplicationResult(
            purchase_id=application.purchase_id,
            amount=application.amount,
            entity_type=application.entity_type,
            entity_id=application.entity_id,
            rule_source="unknown",
            recipients=(),
            already_applied=True,
        )

    # =========================================================================
    # Application
    # =========================================================================

    def apply_splits(
        self,
        purchase_id: str,
        amount: int,
        entity_type: EntityType,
        entity_id: str | None = None,
    ) -> SplitApplicationResult:
        """
        Split ``amount`` for ``purchase_id`` among the entity's recipients.

        Returns the stored result, flagged ``already_applied``, if the
        purchase was split before.
        """
        if not purchase_id:
            raise ValidationError("Purchase id is required", field="purchase_id")
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError(f"Amount must be a positive integer, got {amount!r}", field="amount")
        entity_type = EntityType(entity_type)

        with LogContext.bind(purchase_id=purchase_id):
            existing = self._find_application(purchase_id)
            if existing is not None:
                return self._replay(existing)

            application = self._claim(purchase_id, amount, entity_type, entity_id)
            if application is None:
                return self._replay(self._find_application(purchase_id))

            match = self._rules.get_split_rules(entity_type, entity_id)
            resolution = self._rules.resolve_recipients(match.shares, entity_type, entity_id)
            splits = calculate_splits(
                amount, resolution.recipients, self._policy.platform_reserve_account
            )

            results = [self._apply_one(purchase_id, split) for split in splits]
            results.extend(
                RecipientResult(
                    role=u.share.role,
                    percent=u.share.percent,
                    amount=0,
                    outcome=RecipientOutcome.UNRESOLVED,
                    error_code=u.error.code,
                    error_message=str(u.error),
                )
                for u in resolution.unresolved
            )

            result = SplitApplicationResult(
                purchase_id=purchase_id,
                amount=amount,
                entity_type=entity_type,
                entity_id=entity_id,
                rule_source=match.source,
                recipients=tuple(results),
            )

            application.result = result.to_dict()
            application.completed_at = self._clock.now()
            self._session.flush()

            logger.info(
                "splits_applied",
                extra={
                    "amount": amount,
                    "entity_type": entity_type.value,
                    "entity_id": entity_id,
                    "rule_source": match.source,
                    "recipient_count": len(results),
                    "failure_count": len(result.failures),
                },
            )
            self._audit.log_event(AuditEventType.SPLITS_APPLIED, result.to_dict())
            return result

    def _apply_one(self, purchase_id: str, split: ComputedSplit) -> RecipientResult:
        base: dict[str, Any] = {
            "role": split.role,
            "percent": split.percent,
            "amount": split.amount,
            "account_id": split.account_id,
        }

        if split.is_platform or split.account_id == self._policy.platform_reserve_account:
            return RecipientResult(outcome=RecipientOutcome.RETAINED, **base)
        if split.amount == 0:
            return RecipientResult(outcome=RecipientOutcome.SKIPPED, **base)

        with LogContext.bind(account_id=split.account_id):
            try:
                correlation_id = self._ledger.create_paired_entries(
                    debit_account_id=self._policy.platform_reserve_account,
                    credit_account_id=split.account_id,
                    amount=split.amount,
                    event_source=EventSource.SPLIT,
                    reference_id=purchase_id,
                    description=f"{split.role.value} share of purchase {purchase_id}",
                    metadata={"role": split.role.value, "percent": str(split.percent)},
                )
            except TreasuryKernelError as exc:
                logger.error(
                    "split_recipient_failed",
                    extra={"role": split.role.value, "amount": split.amount, "error_code": exc.code},
                    exc_info=True,
                )
                self._audit.log_event(
                    AuditEventType.SPLIT_RECIPIENT_FAILED,
                    {"account_id": split.account_id, "amount": split.amount, "error_code": exc.code},
                )
                return RecipientResult(
                    outcome=RecipientOutcome.FAILED,
                    error_code=exc.code,
                    error_message=str(exc),
                    **base,
                )

            base["correlation_id"] = str(correlation_id)
            savepoint = self._session.begin_nested()
            try:
                payout = self._scheduler.queue_payout(
                    split.account_id,
                    split.amount,
                    reference_ids=(purchase_id,),
                    metadata={"purchase_id": purchase_id, "role": split.role.value},
                )
                savepoint.commit()
            except (TreasuryKernelError, SQLAlchemyError) as exc:
                savepoint.rollback()
                code = getattr(exc, "code", type(exc).__name__)
                if isinstance(exc, MinimumPayoutError):
                    logger.info(
                        "split_payout_below_minimum",
                        extra={"amount": split.amount, "minimum": exc.minimum},
                    )
                else:
                    logger.warning(
                        "split_payout_not_queued",
                        extra={"amount": split.amount, "error_code": code},
                        exc_info=True,
                    )
                return RecipientResult(
                    outcome=RecipientOutcome.CREDITED,
                    error_code=code,
                    error_message=str(exc),
                    **base,
                )

            return RecipientResult(
                outcome=RecipientOutcome.APPLIED,
                payout_id=str(payout.id),
                **base,
            )
