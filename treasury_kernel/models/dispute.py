"""
Module: treasury_kernel.models.dispute
Responsibility: Chargeback/dispute records.  Counted platform-wide by the
    risk scorer over a trailing window.
"""

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base


class Dispute(Base):
    __tablename__ = "disputes"

    __table_args__ = (Index("idx_disputes_opened", "opened_at"),)

    external_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)

    purchase_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    amount: Mapped[int] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    opened_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Dispute {self.external_id} {self.amount}>"
