"""
Module: treasury_kernel.models.ledger
Responsibility: ORM persistence for the append-only double-entry ledger.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - amount > 0 (CHECK constraint); the side is carried by ``kind``.
    - Rows are never updated or deleted (db/immutability.py).
    - Pairing and zero-sum are enforced by LedgerService, which only ever
      writes entries in debit/credit pairs sharing a correlation_id.

Audit relevance:
    Account balances are derived from these rows at query time and are never
    stored, so the ledger is the single source of truth for who is owed what.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString
from treasury_kernel.domain.dtos import LedgerEntryRecord
from treasury_kernel.domain.values import EntryKind, EventSource
from treasury_kernel.models._types import enum_column_type


class LedgerEntry(Base):
    """
    One side of a double-entry posting.

    Contract:
        Created only by LedgerService.  Exactly two rows share each
        correlation_id: one debit and one credit of equal amount against
        different accounts.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        Index("idx_ledger_account_created", "account_id", "created_at"),
        Index("idx_ledger_correlation", "correlation_id"),
        Index("idx_ledger_reference", "reference_id"),
    )

    account_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Minor units (cents)
    amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    kind: Mapped[EntryKind] = mapped_column(enum_column_type(EntryKind), nullable=False)

    event_source: Mapped[EventSource] = mapped_column(
        enum_column_type(EventSource), nullable=False
    )

    reference_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    correlation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.kind.value} {self.account_id} "
            f"{self.amount} {self.event_source.value}>"
        )

    @property
    def signed_amount(self) -> int:
        return self.amount if self.kind == EntryKind.CREDIT else -self.amount

    def to_dto(self) -> LedgerEntryRecord:
        return LedgerEntryRecord(
            id=self.id,
            account_id=self.account_id,
            amount=self.amount,
            currency=self.currency,
            kind=self.kind,
            event_source=self.event_source,
            correlation_id=self.correlation_id,
            reference_id=self.reference_id,
            description=self.description,
            metadata=dict(self.entry_metadata or {}),
            created_at=self.created_at,
        )
