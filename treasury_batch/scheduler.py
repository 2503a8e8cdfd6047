"""
PayoutBatchScheduler -- in-process polling loop for payout runs.

Contract:
    Polls on a fixed interval and runs ``process_due_payouts`` once per
    daily batch window.  Each run gets its own session, committed after the
    run and rolled back if the run raises.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - A batch window fires at most once per scheduler instance.  A run that
      raises does not mark the window done, so the next tick retries it.
    - Graceful shutdown: ``stop()`` signals the loop and waits for the
      current run to finish.

Non-goals:
    - NOT a distributed scheduler.  Two instances may both run a window;
      the processor's check-and-set keeps each payout single-claimed.
"""

from __future__ import annotations

import threading
from datetime import datetime, time
from typing import Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.dtos import PayoutRunResult
from treasury_kernel.domain.schedule import current_batch_window
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.services.payout_processor import PayoutProcessor
from treasury_kernel.services.payout_scheduler import PayoutScheduler

logger = get_logger("batch.scheduler")


class PayoutBatchScheduler:
    """Runs the payout processor at the configured daily batch time."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        processor_factory: Callable[[Session], PayoutProcessor],
        batch_time_utc: time,
        clock: Clock | None = None,
        scheduler_factory: Callable[[Session], PayoutScheduler] | None = None,
        tick_interval_seconds: float = 60,
    ):
        self._session_factory = session_factory
        self._processor_factory = processor_factory
        self._scheduler_factory = scheduler_factory
        self._batch_time = batch_time_utc
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._last_window: datetime | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def last_window(self) -> datetime | None:
        return self._last_window

    def is_due(self) -> bool:
        window = current_batch_window(self._clock.now(), self._batch_time)
        return self._last_window is None or window > self._last_window

    def tick(self, force: bool = False) -> PayoutRunResult | None:
        """Run the current batch window if it has not run yet.

        Returns the run result, or None when nothing ran or the run failed.
        """
        window = current_batch_window(self._clock.now(), self._batch_time)
        if not force and self._last_window is not None and window <= self._last_window:
            return None

        session = self._session_factory()
        with LogContext.bind(trace_id=str(uuid4())):
            try:
                result = self._run(session)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("payout_batch_failed", extra={"batch_window": window})
                return None
            finally:
                session.close()

            if self._last_window is None or window > self._last_window:
                self._last_window = window
            logger.info(
                "payout_batch_fired",
                extra={
                    "batch_window": window,
                    "selected": result.selected,
                    "completed": result.completed,
                    "failed": result.failed,
                },
            )
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="payout-batch-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)

    def _run(self, session: Session) -> PayoutRunResult:
        if self._scheduler_factory is not None:
            self._scheduler_factory(session).expire_held_payouts()
        return self._processor_factory(session).process_due_payouts()
