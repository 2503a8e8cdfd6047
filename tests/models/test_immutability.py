"""
Ledger entries and audit events are append-only at the ORM level.
"""

import pytest
from sqlalchemy import select

from treasury_kernel.db.immutability import register_immutability_listeners
from treasury_kernel.domain.values import EventSource
from treasury_kernel.exceptions import ImmutabilityViolationError
from treasury_kernel.models.audit_event import AuditEvent
from treasury_kernel.models.ledger import LedgerEntry


@pytest.fixture
def ledger_entry(ledger_service, session):
    correlation_id = ledger_service.create_paired_entries(
        "acct_a", "acct_b", 100, EventSource.ADJUSTMENT
    )
    return session.scalars(
        select(LedgerEntry).where(LedgerEntry.correlation_id == correlation_id)
    ).first()


class TestLedgerEntryImmutability:
    def test_update_rejected(self, ledger_entry, session, captured_logs):
        entry_id = str(ledger_entry.id)
        ledger_entry.amount = 1_000_000
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "LedgerEntry"
        assert exc_info.value.entity_id == entry_id
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_delete_rejected(self, ledger_entry, session):
        session.delete(ledger_entry)
        with pytest.raises(ImmutabilityViolationError, match="cannot be deleted"):
            session.flush()


class TestAuditEventImmutability:
    def test_update_rejected(self, audit_log, session):
        audit_log.log_event("payout_queued", {"amount": 1})
        event = session.scalars(select(AuditEvent)).one()
        event.payload = {"amount": 2}
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_rejected(self, audit_log, session):
        audit_log.log_event("payout_queued", {"amount": 1})
        session.delete(session.scalars(select(AuditEvent)).one())
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


def test_registration_is_idempotent(ledger_entry, session):
    register_immutability_listeners()
    register_immutability_listeners()
    ledger_entry.description = "edited"
    with pytest.raises(ImmutabilityViolationError):
        session.flush()
