"""Enumerated value types shared by models, services and DTOs."""

from enum import Enum


class EntryKind(str, Enum):
    """Side of a ledger entry."""

    DEBIT = "debit"
    CREDIT = "credit"


class EventSource(str, Enum):
    """Business event that produced a ledger entry."""

    CHARGE = "charge"
    REFUND = "refund"
    SPLIT = "split"
    ATTRIBUTION = "attribution"
    ADJUSTMENT = "adjustment"
    PAYOUT = "payout"


class EntityType(str, Enum):
    """Kind of sellable entity a split rule applies to."""

    EVENT = "event"
    SUBSCRIPTION = "subscription"
    DROP = "drop"
    TIP = "tip"
    DEFAULT = "default"


class RecipientRole(str, Enum):
    """Role a split recipient plays for an entity."""

    ARTIST = "artist"
    HOST = "host"
    PLATFORM = "platform"
    PROMOTER = "promoter"


class PayoutType(str, Enum):
    SCHEDULED = "scheduled"
    INSTANT = "instant"
    MANUAL = "manual"


class PayoutStatus(str, Enum):
    """
    Payout lifecycle.

        pending --> processing --> completed
           |             |
           |             +-------> failed
           +--> cancelled
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def can_transition_to(self, target: "PayoutStatus") -> bool:
        return target in _TRANSITIONS[self]


_TERMINAL = frozenset(
    {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.CANCELLED}
)

_TRANSITIONS: dict[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PROCESSING, PayoutStatus.CANCELLED}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED}),
    PayoutStatus.COMPLETED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
    PayoutStatus.CANCELLED: frozenset(),
}


class RecipientOutcome(str, Enum):
    """What happened to one recipient during split application."""

    APPLIED = "applied"
    """Ledger credit written and payout queued."""

    CREDITED = "credited"
    """Ledger credit written; payout not queued (below minimum, no balance)."""

    FAILED = "failed"
    """Ledger write failed; nothing recorded for this recipient."""

    RETAINED = "retained"
    """Platform share; stays in the reserve account."""

    SKIPPED = "skipped"
    """Share rounded down to zero; nothing written."""

    UNRESOLVED = "unresolved"
    """No account fills the role; the share went to the platform residue."""
