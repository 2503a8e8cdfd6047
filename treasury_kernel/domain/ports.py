"""
Ports -- interfaces the kernel calls out through.

The payment processor and the domain layer that knows who the artist or
host of an entity is both live outside the kernel.  They are injected as
objects satisfying these protocols.
"""

from typing import Any, Mapping, Protocol, runtime_checkable

from treasury_kernel.domain.values import EntityType, RecipientRole


@runtime_checkable
class PaymentProcessor(Protocol):
    """Opaque money-movement capability."""

    def create_transfer(
        self,
        amount_minor_units: int,
        currency: str,
        destination_account: str,
        metadata: Mapping[str, Any],
        idempotency_key: str,
    ) -> str:
        """Move funds and return the processor's transfer id.

        Raises:
            PayoutTransferError: With the processor's failure code and
                whether a retry with the same idempotency key may succeed.
        """
        ...


@runtime_checkable
class RoleResolver(Protocol):
    """Maps a split role on an entity to the account that fills it."""

    def resolve_role(
        self,
        entity_type: EntityType,
        entity_id: str | None,
        role: RecipientRole,
    ) -> str | None:
        """Return the account id for ``role``, or None if nobody fills it."""
        ...


class StaticRoleResolver:
    """RoleResolver backed by an in-memory mapping.

    Keys are ``(entity_id, role)``; useful for admin tooling and tests.
    """

    def __init__(self, assignments: Mapping[tuple[str | None, RecipientRole], str] | None = None):
        self._assignments = dict(assignments or {})

    def assign(self, entity_id: str | None, role: RecipientRole, account_id: str) -> None:
        self._assignments[(entity_id, RecipientRole(role))] = account_id

    def resolve_role(
        self,
        entity_type: EntityType,
        entity_id: str | None,
        role: RecipientRole,
    ) -> str | None:
        return self._assignments.get((entity_id, RecipientRole(role)))
