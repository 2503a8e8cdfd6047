"""
AuditLog -- fire-and-forget audit event recording.

Responsibility:
    Persists one ``audit_events`` row per significant treasury action.

Invariants enforced:
    - Recording an audit event never fails the caller.  The insert runs in
      its own SAVEPOINT; any failure rolls back only that savepoint and is
      logged as ``audit_event_dropped`` with an AuditLogError attached.
    - Audit rows are append-only (db/immutability.py).
"""

import json
from typing import Any

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.exceptions import AuditLogError
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.models.audit_event import AuditEvent
from treasury_kernel.services.base import BaseService

logger = get_logger("services.audit_log")


def _json_safe(payload: dict[str, Any] | None) -> dict[str, Any]:
    return json.loads(json.dumps(payload or {}, default=str, sort_keys=True))


class AuditLog(BaseService[AuditEvent]):
    """
    Writes audit events inside the caller's transaction.

    The event becomes durable only if the caller's transaction commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def log_event(
        self,
        event_type: str,
        payload: dict[str, Any] | None = None,
        *,
        actor_id: str | None = None,
    ) -> bool:
        """
        Record an audit event.

        Returns:
            True if the row was flushed, False if it was dropped.
        """
        context = LogContext.get_all()
        try:
            savepoint = self.session.begin_nested()
            try:
                self.session.add(
                    AuditEvent(
                        event_type=event_type,
                        payload=_json_safe(payload),
                        occurred_at=self._clock.now(),
                        correlation_id=context.get("correlation_id"),
                        actor_id=actor_id or context.get("actor_id"),
                    )
                )
                self.session.flush()
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                raise
        except Exception as exc:
            error = AuditLogError(event_type, str(exc))
            logger.warning(
                "audit_event_dropped",
                extra={"event_type": event_type, "error_code": error.code, "reason": error.reason},
            )
            return False

        logger.debug("audit_event_recorded", extra={"event_type": event_type})
        return True
