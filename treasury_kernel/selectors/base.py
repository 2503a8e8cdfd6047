"""
Module: treasury_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ DTOs.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Derived balances: every balance is computed from ledger rows at query
      time.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from treasury_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Accepts a Session from the caller and performs read-only queries."""

    def __init__(self, session: Session):
        self.session = session
