"""
Module: treasury_kernel.models.split_rule
Responsibility: ORM persistence for split rules and the per-purchase split
    application record.
Architecture position: Kernel > Models.

Invariants enforced:
    - Recipient percentages sum to 100 (validated by SplitRuleService before
      INSERT; the engine never mutates a rule's recipients).
    - A purchase is split at most once: split_applications.purchase_id is
      UNIQUE and the row is claimed before any ledger write.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base
from treasury_kernel.domain.dtos import SplitApplicationResult, SplitRuleRecord
from treasury_kernel.domain.policies import SplitShare
from treasury_kernel.domain.values import EntityType
from treasury_kernel.models._types import enum_column_type


class SplitRule(Base):
    """
    Percentage table for dividing revenue of one entity (or entity type).

    ``recipients`` is a JSON list of ``{"role", "percent", "recipient_id"}``
    objects; percents are stored as strings so Decimal values round-trip.
    """

    __tablename__ = "split_rules"

    __table_args__ = (
        Index("idx_split_rules_entity", "entity_type", "entity_id", "is_active"),
        Index("idx_split_rules_owner", "owner_id", "is_active"),
    )

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    entity_type: Mapped[EntityType] = mapped_column(
        enum_column_type(EntityType), nullable=False
    )

    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    recipients: Mapped[list] = mapped_column(JSON, nullable=False)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    deactivated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<SplitRule {self.name} {self.entity_type.value}:{self.entity_id}>"

    @property
    def shares(self) -> tuple[SplitShare, ...]:
        return tuple(SplitShare.from_dict(r) for r in self.recipients)

    def to_dto(self) -> SplitRuleRecord:
        return SplitRuleRecord(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            recipients=tuple(dict(r) for r in self.recipients),
            is_default=self.is_default,
            is_active=self.is_active,
            created_at=self.created_at,
        )


class SplitApplication(Base):
    """
    Idempotency record for SplitApplier.apply_splits().

    Inserted before any ledger write for the purchase.  ``result`` is filled
    in once every recipient has been processed and is returned verbatim to
    any repeated call.
    """

    __tablename__ = "split_applications"

    purchase_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    amount: Mapped[int] = mapped_column(nullable=False)

    entity_type: Mapped[EntityType] = mapped_column(
        enum_column_type(EntityType), nullable=False
    )

    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_result(self, already_applied: bool = True) -> SplitApplicationResult | None:
        if self.result is None:
            return None
        return SplitApplicationResult.from_dict(self.result, already_applied=already_applied)
