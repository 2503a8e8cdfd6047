"""
ORM-level immutability enforcement for append-only treasury records.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  Listeners registered here reject any such operation on the
append-only tables:

    session.flush()
         |
         v
    [before_update] --> _reject_update() --> ImmutabilityViolationError
    [before_delete] --> _reject_delete() --> ImmutabilityViolationError

Entity          | When immutable
----------------|-------------------
LedgerEntry     | Always
AuditEvent      | Always

Corrections to the ledger are new compensating entries (refunds,
adjustments), never edits.

Bulk ``session.execute(update(...))`` statements bypass mapper events;
services never issue bulk statements against these tables.
"""

from sqlalchemy import event

from treasury_kernel.exceptions import ImmutabilityViolationError
from treasury_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(target, operation: str) -> ImmutabilityViolationError:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be {verb}",
    )


def _reject_update(mapper, connection, target):
    raise _blocked(target, "UPDATE")


def _reject_delete(mapper, connection, target):
    raise _blocked(target, "DELETE")


def _append_only_models():
    from treasury_kernel.models.audit_event import AuditEvent
    from treasury_kernel.models.ledger import LedgerEntry

    return (LedgerEntry, AuditEvent)


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once during application initialization, after models are imported.
    Registering twice is harmless.
    """
    for model in _append_only_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for model in _append_only_models():
        _safe_remove_listener(model, "before_update", _reject_update)
        _safe_remove_listener(model, "before_delete", _reject_delete)
