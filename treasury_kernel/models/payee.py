"""
Module: treasury_kernel.models.payee
Responsibility: Registry of payout destinations and account ages.

The risk scorer reads ``opened_at``; the payout processor reads
``destination`` and ``payouts_enabled``.
"""

from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base


class PayeeAccount(Base):
    __tablename__ = "payee_accounts"

    account_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    opened_at: Mapped[datetime] = mapped_column(nullable=False)

    # Processor-side connected account id
    destination: Mapped[str | None] = mapped_column(String(128), nullable=True)

    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<PayeeAccount {self.account_id} enabled={self.payouts_enabled}>"
