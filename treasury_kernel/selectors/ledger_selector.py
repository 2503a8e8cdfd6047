"""
Module: treasury_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: derived account balances, paired
    entry lookup, transaction history, the global zero-sum check and ledger
    statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No stored balances.  Balance = sum(credits) - sum(debits) over all
      entries for the account, computed at query time.
    - Zero-sum: validate_global_balance() compares ledger-wide debit and
      credit totals.
"""

from uuid import UUID

from sqlalchemy import case, func, select

from treasury_kernel.domain.clock import ensure_utc
from treasury_kernel.domain.dtos import GlobalBalanceCheck, LedgerEntryRecord, LedgerStats
from treasury_kernel.domain.values import EntryKind
from treasury_kernel.models.ledger import LedgerEntry
from treasury_kernel.selectors.base import BaseSelector

_signed_amount = case(
    (LedgerEntry.kind == EntryKind.CREDIT, LedgerEntry.amount),
    else_=-LedgerEntry.amount,
)


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Selector for ledger reads.

    Guarantees:
        - Balances are integers in minor units (never float).
        - An account with no entries has balance 0.
    """

    def get_account_balance(self, account_id: str) -> int:
        """Credits minus debits for ``account_id``."""
        total = self.session.execute(
            select(func.coalesce(func.sum(_signed_amount), 0)).where(
                LedgerEntry.account_id == account_id
            )
        ).scalar_one()
        return int(total)

    def get_paired_entries(self, correlation_id: UUID | str) -> list[LedgerEntryRecord]:
        """Both sides of a paired write, debit first."""
        if isinstance(correlation_id, str):
            correlation_id = UUID(correlation_id)
        rows = self.session.scalars(
            select(LedgerEntry).where(LedgerEntry.correlation_id == correlation_id)
        ).all()
        return sorted(
            (r.to_dto() for r in rows),
            key=lambda e: 0 if e.kind == EntryKind.DEBIT else 1,
        )

    def get_account_transactions(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntryRecord]:
        """Entries for ``account_id``, newest first."""
        rows = self.session.scalars(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
            .limit(limit)
            .offset(offset)
        ).all()
        return [r.to_dto() for r in rows]

    def get_entries_by_reference(self, reference_id: str) -> list[LedgerEntryRecord]:
        rows = self.session.scalars(
            select(LedgerEntry)
            .where(LedgerEntry.reference_id == reference_id)
            .order_by(LedgerEntry.created_at, LedgerEntry.correlation_id)
        ).all()
        return [r.to_dto() for r in rows]

    def totals(self) -> tuple[int, int]:
        """Ledger-wide (total_debits, total_credits)."""
        debits, credits = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((LedgerEntry.kind == EntryKind.DEBIT, LedgerEntry.amount), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(case((LedgerEntry.kind == EntryKind.CREDIT, LedgerEntry.amount), else_=0)),
                    0,
                ),
            )
        ).one()
        return int(debits), int(credits)

    def validate_global_balance(self) -> GlobalBalanceCheck:
        """Zero-sum check over the whole ledger.  Never corrects anything."""
        debits, credits = self.totals()
        return GlobalBalanceCheck(
            is_balanced=debits == credits,
            total_imbalance=abs(credits - debits),
            total_debits=debits,
            total_credits=credits,
        )

    def get_ledger_stats(self) -> LedgerStats:
        count, accounts, last_at = self.session.execute(
            select(
                func.count(LedgerEntry.id),
                func.count(func.distinct(LedgerEntry.account_id)),
                func.max(LedgerEntry.created_at),
            )
        ).one()
        _, credits = self.totals()
        if last_at is not None:
            last_at = ensure_utc(last_at)
        return LedgerStats(
            total_entries=int(count),
            distinct_accounts=int(accounts),
            total_volume=credits,
            last_entry_at=last_at,
        )
