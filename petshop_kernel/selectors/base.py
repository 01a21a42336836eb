"""
Module: petshop_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the kernel, providing structured read access to the
    till, the ledger and the dashboard without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (for DTOs and the reconciliation calculator).  MUST NOT import
    from services/.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses or computed
      results, NOT raw ORM model instances.
    - No caching: every call reads the store again.

Failure modes:
    - StorageError if the store fails during a read.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from petshop_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
