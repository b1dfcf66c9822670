"""
BaseService -- abstract base for all mutating ledger services.

Responsibility:
    Common constructor and session-handling contract.  Every service
    receives a SQLAlchemy ``Session`` and persists with ``session.flush()``
    only -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - The caller owns the transaction.  A posting, its lines, its sequence
      numbers and its audit log row commit or roll back together.

Failure modes:
    - A subclass that commits breaks all-or-nothing posting.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for ledger services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``; savepoints are the only nested scopes it
          opens.

    Non-goals:
        - Read-only queries for reports belong in ``ledger_kernel.selectors``.
    """

    def __init__(self, session: Session):
        self.session = session
