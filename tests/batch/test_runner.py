"""
End-to-end wiring: config -> engine -> batch scheduler -> processor.

Uses the module-level engine from treasury_kernel.db.engine against an
in-memory SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from treasury_batch import build_payout_batch_scheduler
from treasury_config import DEFAULT_CONFIG_PATH
from treasury_config.loader import load_yaml_file, parse_config
from treasury_kernel.db.engine import create_tables, get_session, reset_engine, session_scope
from treasury_kernel.domain.values import EventSource, PayoutStatus
from treasury_kernel.models.payout import Payout
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.payee_service import PayeeService
from treasury_kernel.services.payout_scheduler import PayoutScheduler


@pytest.fixture
def config():
    return parse_config(load_yaml_file(DEFAULT_CONFIG_PATH), database_url="sqlite:///:memory:")


@pytest.fixture
def batch(config, payment_processor, clock):
    scheduler = build_payout_batch_scheduler(payment_processor, config=config, clock=clock)
    create_tables()
    yield scheduler
    scheduler.stop(timeout=1)
    reset_engine()


def test_scheduled_payout_completes_at_batch_window(batch, config, clock, payment_processor):
    policy = config.policy
    with session_scope() as session:
        payees = PayeeService(session, clock)
        payees.register_account("acct_artist", opened_at=clock.now() - timedelta(days=60))
        payees.register_destination("acct_artist", "dest_artist")
        LedgerService(session, policy, clock).create_paired_entries(
            policy.platform_reserve_account, "acct_artist", 10_000, EventSource.ADJUSTMENT
        )
        payout_id = PayoutScheduler(session, policy, clock).queue_payout("acct_artist", 7_000).id

    clock.set_time(datetime(2024, 1, 2, 2, 0, tzinfo=timezone.utc))
    result = batch.tick()

    assert result.completed_ids == (str(payout_id),)
    assert payment_processor.calls[0]["destination"] == "dest_artist"

    with session_scope() as session:
        payout = session.scalars(select(Payout)).one()
        assert payout.status == PayoutStatus.COMPLETED
        assert LedgerService(session, policy, clock).get_account_balance("acct_artist") == 3_000


def test_session_scope_rolls_back_on_error(batch, config, clock):
    with pytest.raises(RuntimeError):
        with session_scope() as session:
            PayeeService(session, clock).register_account("acct_1")
            raise RuntimeError("abort")

    session = get_session()
    try:
        assert PayeeService(session, clock).get_account_age_days("acct_1") is None
    finally:
        session.close()
