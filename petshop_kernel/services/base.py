"""
BaseService -- abstract base for the kernel's flush-only services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that write inside the caller's transaction.  Concrete services
    use ``session.flush()`` and never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    RegisterService and LedgerService extend this class.  The completion
    coordinator and the SQL appointment store do not: each of their steps
    owns its own transaction.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction.  The caller (``session_scope()`` or a test fixture) owns
      commit/rollback.  The one exception is the rollback that must follow a
      failed flush before the session can be used again.

Failure modes:
    - If a subclass commits, a register open and the sale that follows it
      can no longer be made atomic by the caller.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petshop_kernel.db.base import Base
from petshop_kernel.exceptions import StorageError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit).
        - Does NOT provide query-only (read) methods -- those belong
          in ``petshop_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _storage_error(self, operation: str, exc: SQLAlchemyError) -> StorageError:
        """Roll back the failed flush and wrap the driver error."""
        self.session.rollback()
        detail = getattr(exc, "orig", None) or exc
        return StorageError(operation, str(detail))
