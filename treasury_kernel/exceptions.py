"""
Typed Exception Hierarchy for the Treasury Kernel.

Every error raised by the kernel is a subclass of TreasuryKernelError,
carries a machine-readable ``code`` class attribute, and stores its
context as structured attributes rather than only in the message.

    TreasuryKernelError (base)
    |
    +-- ValidationError
    |   +-- SplitPercentageError
    |   +-- MinimumPayoutError
    |   +-- InstantPayoutLimitError
    |
    +-- LedgerError
    |   +-- InsufficientBalanceError
    |   +-- LedgerConsistencyError
    |
    +-- SplitError
    |   +-- RecipientResolutionError
    |   +-- SplitRuleNotFoundError
    |
    +-- PayoutError
    |   +-- PayoutNotFoundError
    |   +-- PayoutStateError
    |   +-- PayoutTransferError
    |   +-- PayoutDestinationError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditLogError

Validation and balance errors are raised synchronously to the caller.
Transfer errors are recorded on the payout row and then re-raised.
AuditLogError is never propagated out of AuditLog.log_event().

Handling pattern:

    try:
        scheduler.queue_payout(account_id, amount)
    except MinimumPayoutError as e:
        return {"error": e.code, "minimum": e.minimum}
    except InsufficientBalanceError as e:
        return {"error": e.code, "balance": e.balance}
"""


class TreasuryKernelError(Exception):
    """
    Base exception for all treasury kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TREASURY_KERNEL_ERROR"


# Validation exceptions


class ValidationError(TreasuryKernelError):
    """Input rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class SplitPercentageError(ValidationError):
    """Split rule recipient percentages do not sum to 100."""

    code: str = "SPLIT_PERCENTAGE_INVALID"

    def __init__(self, total_percent, reason: str | None = None):
        self.total_percent = total_percent
        super().__init__(
            reason or f"Split percentages must sum to 100, got {total_percent}",
            field="recipients",
        )


class MinimumPayoutError(ValidationError):
    """Payout amount is below the configured minimum."""

    code: str = "MINIMUM_PAYOUT_NOT_MET"

    def __init__(self, amount: int, minimum: int):
        self.amount = amount
        self.minimum = minimum
        super().__init__(
            f"Payout amount {amount} is below minimum {minimum}",
            field="amount",
        )


class InstantPayoutLimitError(ValidationError):
    """Instant payout amount exceeds the configured ceiling."""

    code: str = "INSTANT_PAYOUT_LIMIT_EXCEEDED"

    def __init__(self, amount: int, maximum: int):
        self.amount = amount
        self.maximum = maximum
        super().__init__(
            f"Instant payout amount {amount} exceeds maximum {maximum}",
            field="amount",
        )


# Ledger exceptions


class LedgerError(TreasuryKernelError):
    """Base exception for ledger errors."""

    code: str = "LEDGER_ERROR"


class InsufficientBalanceError(LedgerError):
    """
    Account ledger balance, less payouts already queued against it, does
    not cover the requested amount.
    """

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, account_id: str, balance: int, requested: int, pending: int = 0):
        self.account_id = account_id
        self.balance = balance
        self.pending = pending
        self.requested = requested
        super().__init__(
            f"Insufficient balance for {account_id}: "
            f"balance {balance}, pending {pending}, requested {requested}"
        )

    @property
    def available(self) -> int:
        return self.balance - self.pending


class LedgerConsistencyError(LedgerError):
    """
    A paired write could not be completed atomically.

    Raised after the enclosing savepoint was rolled back, so neither half
    of the pair is visible.
    """

    code: str = "LEDGER_CONSISTENCY_ERROR"

    def __init__(self, correlation_id: str, reason: str):
        self.correlation_id = correlation_id
        self.reason = reason
        super().__init__(
            f"Paired ledger write {correlation_id} failed: {reason}"
        )


# Split exceptions


class SplitError(TreasuryKernelError):
    """Base exception for split resolution and application errors."""

    code: str = "SPLIT_ERROR"


class RecipientResolutionError(SplitError):
    """A split role could not be mapped to a concrete account."""

    code: str = "RECIPIENT_RESOLUTION_FAILED"

    def __init__(
        self,
        role: str,
        entity_type: str,
        entity_id: str | None,
        reason: str | None = None,
    ):
        self.role = role
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = f"Could not resolve {role} for {entity_type} {entity_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SplitRuleNotFoundError(SplitError):
    """Split rule does not exist or is not owned by the caller."""

    code: str = "SPLIT_RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Split rule not found: {rule_id}")


# Payout exceptions


class PayoutError(TreasuryKernelError):
    """Base exception for payout errors."""

    code: str = "PAYOUT_ERROR"


class PayoutNotFoundError(PayoutError):
    """Payout with given ID was not found."""

    code: str = "PAYOUT_NOT_FOUND"

    def __init__(self, payout_id: str):
        self.payout_id = payout_id
        super().__init__(f"Payout not found: {payout_id}")


class PayoutStateError(PayoutError):
    """Requested transition is not allowed from the payout's current status."""

    code: str = "PAYOUT_INVALID_STATE"

    def __init__(self, payout_id: str, current_status: str, requested: str):
        self.payout_id = payout_id
        self.current_status = current_status
        self.requested = requested
        super().__init__(
            f"Payout {payout_id} cannot move from {current_status} to {requested}"
        )


class PayoutTransferError(PayoutError):
    """
    The payment processor rejected or failed a transfer.

    ``failure_code`` is the processor's code (or a kernel code such as
    ``transfer_timeout``). ``retryable`` marks transient failures that the
    processor may retry with the same idempotency key.
    """

    code: str = "PAYOUT_TRANSFER_FAILED"

    def __init__(
        self,
        failure_code: str | None,
        message: str,
        retryable: bool = False,
        payout_id: str | None = None,
    ):
        self.failure_code = failure_code or "unknown_error"
        self.failure_message = message
        self.retryable = retryable
        self.payout_id = payout_id
        super().__init__(f"Transfer failed ({self.failure_code}): {message}")


class PayoutDestinationError(PayoutError):
    """No enabled payout destination is registered for the account."""

    code: str = "PAYOUT_DESTINATION_UNAVAILABLE"

    def __init__(self, account_id: str, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"No payout destination for {account_id}: {reason}")


# Immutability exceptions


class ImmutabilityError(TreasuryKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    LedgerEntry and AuditEvent rows are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditLogError(TreasuryKernelError):
    """Audit event could not be persisted. Logged, never raised to callers."""

    code: str = "AUDIT_LOG_ERROR"

    def __init__(self, event_type: str, reason: str):
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Audit event {event_type} not recorded: {reason}")
