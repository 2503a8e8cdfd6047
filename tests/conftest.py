"""
Pytest fixtures for the treasury kernel test suite.

Provides:
- In-memory SQLite engines and sessions (one database per test)
- Deterministic clock and default policy
- A scriptable fake payment processor and a static role resolver
- Service fixtures wired to the test session
- Structured log capture

SQLite runs with the savepoint recipe from treasury_kernel.db.engine so the
services' SAVEPOINT handling behaves as it does on PostgreSQL.
"""

import json
import logging
import time
from datetime import timedelta
from io import StringIO
from typing import Any, Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import treasury_kernel.models  # noqa: F401  (registers tables on Base.metadata)
from treasury_kernel.db.base import Base
from treasury_kernel.db.engine import create_configured_engine
from treasury_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from treasury_kernel.domain.clock import DeterministicClock
from treasury_kernel.domain.policies import TreasuryPolicy
from treasury_kernel.domain.ports import StaticRoleResolver
from treasury_kernel.domain.values import EventSource, RecipientRole
from treasury_kernel.exceptions import PayoutTransferError
from treasury_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.dispute_service import DisputeService
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.payee_service import PayeeService
from treasury_kernel.services.payout_processor import PayoutProcessor
from treasury_kernel.services.payout_scheduler import PayoutScheduler
from treasury_kernel.services.risk_scorer import RiskScorer
from treasury_kernel.services.split_applier import SplitApplier
from treasury_kernel.services.split_rule_service import SplitRuleService

EVENT_ID = "evt_1"
ARTIST_ACCOUNT = "acct_artist"
HOST_ACCOUNT = "acct_host"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture treasury_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, split_applier):
            split_applier.apply_splits(...)
            logs = captured_logs()
            assert any(r["message"] == "splits_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("treasury_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with all treasury tables."""
    engine = create_configured_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Session for one test.  Nothing is committed; teardown rolls back."""
    sess = session_factory()
    yield sess
    try:
        sess.rollback()
    finally:
        sess.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def policy() -> TreasuryPolicy:
    return TreasuryPolicy()


@pytest.fixture
def role_resolver() -> StaticRoleResolver:
    """Artist and host assigned for EVENT_ID."""
    return StaticRoleResolver(
        {
            (EVENT_ID, RecipientRole.ARTIST): ARTIST_ACCOUNT,
            (EVENT_ID, RecipientRole.HOST): HOST_ACCOUNT,
        }
    )


class FakePaymentProcessor:
    """
    In-memory PaymentProcessor.

    Records every call.  Exceptions queued with ``fail_next`` or
    ``raise_next`` are raised by the following calls, in order; once the
    queue is empty calls succeed with ``tr_<n>``.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.delay_seconds = 0.0
        self._queued: list[Exception] = []

    def fail_next(self, failure_code: str, retryable: bool = False, times: int = 1) -> None:
        for _ in range(times):
            self._queued.append(
                PayoutTransferError(failure_code, f"{failure_code} from processor", retryable=retryable)
            )

    def raise_next(self, exc: Exception) -> None:
        self._queued.append(exc)

    def create_transfer(
        self,
        amount_minor_units: int,
        currency: str,
        destination_account: str,
        metadata,
        idempotency_key: str,
    ) -> str:
        self.calls.append(
            {
                "amount": amount_minor_units,
                "currency": currency,
                "destination": destination_account,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self._queued:
            raise self._queued.pop(0)
        return f"tr_{len(self.calls)}"


@pytest.fixture
def payment_processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by PayoutProcessor retries."""
    return []


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def audit_log(session, clock) -> AuditLog:
    return AuditLog(session, clock)


@pytest.fixture
def ledger_service(session, policy, clock, audit_log) -> LedgerService:
    return LedgerService(session, policy, clock, audit_log)


@pytest.fixture
def payee_service(session, clock) -> PayeeService:
    return PayeeService(session, clock)


@pytest.fixture
def dispute_service(session, clock, audit_log) -> DisputeService:
    return DisputeService(session, clock, audit_log)


@pytest.fixture
def split_rule_service(session, policy, role_resolver, clock, audit_log) -> SplitRuleService:
    return SplitRuleService(session, policy, role_resolver, clock, audit_log)


@pytest.fixture
def risk_scorer(session, policy, clock) -> RiskScorer:
    return RiskScorer(session, policy.risk, clock)


@pytest.fixture
def payout_scheduler(session, policy, clock, risk_scorer, audit_log) -> PayoutScheduler:
    return PayoutScheduler(session, policy, clock, risk_scorer, audit_log)


@pytest.fixture
def split_applier(
    session, policy, role_resolver, clock, ledger_service, split_rule_service,
    payout_scheduler, audit_log,
) -> SplitApplier:
    return SplitApplier(
        session,
        policy,
        role_resolver,
        clock,
        ledger=ledger_service,
        rules=split_rule_service,
        scheduler=payout_scheduler,
        audit_log=audit_log,
    )


@pytest.fixture
def payout_processor(
    session, policy, payment_processor, clock, payee_service, ledger_service,
    audit_log, sleeps,
) -> PayoutProcessor:
    return PayoutProcessor(
        session,
        policy,
        payment_processor,
        clock,
        payees=payee_service,
        ledger=ledger_service,
        audit_log=audit_log,
        sleep=sleeps.append,
    )


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def fund_account(ledger_service, policy):
    """Credit an account from the platform reserve.  Returns the correlation id."""

    def _fund(account_id: str, amount: int):
        return ledger_service.create_paired_entries(
            debit_account_id=policy.platform_reserve_account,
            credit_account_id=account_id,
            amount=amount,
            event_source=EventSource.ADJUSTMENT,
            description="test funding",
        )

    return _fund


@pytest.fixture
def established_payee(payee_service, clock, fund_account):
    """
    An account opened 90 days ago with an enabled destination and a funded
    balance: it scores below the hold threshold for ordinary amounts.
    """

    def _make(account_id: str = "acct_established", balance: int = 200_000) -> str:
        payee_service.register_account(account_id, opened_at=clock.now() - timedelta(days=90))
        payee_service.register_destination(account_id, f"dest_{account_id}")
        if balance:
            fund_account(account_id, balance)
        return account_id

    return _make
