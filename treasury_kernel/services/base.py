"""
BaseService -- abstract base for all kernel services.

Every service receives a SQLAlchemy ``Session`` from its caller and persists
with ``session.flush()``, never ``session.commit()``.  The caller
(``session_scope()``, the batch scheduler, or a test fixture) owns the
transaction; services only open SAVEPOINTs for sub-operations that must be
atomic on their own.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from treasury_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()`` on the outer transaction.

    Non-goals:
        Read-only queries belong in ``treasury_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
