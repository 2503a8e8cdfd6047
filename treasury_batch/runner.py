"""
Wiring for a standalone payout batch process.

Reads the active treasury configuration, initializes logging and the
database engine, and returns a PayoutBatchScheduler whose factories build
kernel services from each run's session.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from treasury_batch.scheduler import PayoutBatchScheduler
from treasury_config import TreasuryConfig, get_active_config
from treasury_kernel.db.engine import get_session_factory, init_engine_from_url
from treasury_kernel.db.immutability import register_immutability_listeners
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.ports import PaymentProcessor
from treasury_kernel.logging_config import configure_logging
from treasury_kernel.services.payout_processor import PayoutProcessor
from treasury_kernel.services.payout_scheduler import PayoutScheduler


def build_payout_batch_scheduler(
    payment_processor: PaymentProcessor,
    config: TreasuryConfig | None = None,
    clock: Clock | None = None,
) -> PayoutBatchScheduler:
    config = config or get_active_config()
    clock = clock or SystemClock()

    configure_logging(level=getattr(logging, config.log_level, logging.INFO))
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    register_immutability_listeners()

    policy = config.policy

    def processor_factory(session: Session) -> PayoutProcessor:
        return PayoutProcessor(session, policy, payment_processor, clock)

    def scheduler_factory(session: Session) -> PayoutScheduler:
        return PayoutScheduler(session, policy, clock)

    return PayoutBatchScheduler(
        session_factory=get_session_factory(),
        processor_factory=processor_factory,
        scheduler_factory=scheduler_factory,
        batch_time_utc=policy.payout.batch_time_utc,
        clock=clock,
        tick_interval_seconds=config.scheduler.tick_interval_seconds,
    )
