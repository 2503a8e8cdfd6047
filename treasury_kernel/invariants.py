"""
Kernel Invariants Contract.

These invariants are structural law for the treasury kernel. No
configuration value or policy object may switch them off.

This module only declares the invariants. Enforcement is distributed
across LedgerService, SplitApplier, PayoutProcessor and the ORM
immutability listeners in treasury_kernel.db.immutability.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    ZERO_SUM = "zero_sum"
    """Total debits equal total credits across the whole ledger. Verified
    on demand by LedgerSelector.validate_global_balance()."""

    PAIRED_ENTRIES = "paired_entries"
    """Every correlation_id links exactly one debit and one credit of equal
    amount against different accounts. Enforced by
    LedgerService.create_paired_entries() inside a single SAVEPOINT."""

    IMMUTABILITY = "immutability"
    """Ledger entries and audit events are append-only. Enforced by ORM
    listeners (treasury_kernel.db.immutability)."""

    DERIVED_BALANCES = "derived_balances"
    """Account balances are computed from ledger rows at query time and are
    never stored."""

    SPLIT_CONSERVATION = "split_conservation"
    """Computed split amounts always sum to the purchase total. Enforced by
    treasury_kernel.domain.splits.calculate_splits()."""

    SPLIT_IDEMPOTENCY = "split_idempotency"
    """A purchase is split at most once. Enforced by the UNIQUE purchase_id
    on split_applications."""

    PAYOUT_FORWARD_ONLY = "payout_forward_only"
    """Payout status only moves forward; cancellation only from pending.
    Enforced by PayoutProcessor with an atomic check-and-set."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "treasury_config",
    "treasury_batch",
)
