"""
Module: petshop_kernel.models.cash_register
Responsibility: ORM persistence for the daily cash session (the till).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one row with status 'open': partial unique index
      uq_cash_registers_single_open.  This is what closes the race between
      two administrators opening the till at the same time; the service-level
      check alone cannot.
    - initial_amount >= 0 (ck_cash_registers_initial_nonneg).
    - final_amount, expected_amount and closed_at are present iff the row is
      closed (ck_cash_registers_closed_fields).
    - Closed rows are never updated and no row is ever deleted
      (db/immutability.py).

Failure modes:
    - IntegrityError on a second open row (translated to
      RegisterAlreadyOpenError by RegisterService).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from petshop_kernel.db.base import Base


class RegisterStatus(str, Enum):
    """Lifecycle status of a cash register.

    Transitions exactly once: OPEN -> CLOSED.  Never reopened.
    """

    OPEN = "open"
    CLOSED = "closed"


class CashRegister(Base):
    """
    One daily cash session.

    The discrepancy (final_amount - expected_amount) is never stored; readers
    derive it so there is a single source of truth for both amounts.
    """

    __tablename__ = "cash_registers"

    __table_args__ = (
        Index(
            "uq_cash_registers_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_cash_registers_opened_at", "opened_at"),
        CheckConstraint(
            "initial_amount >= 0",
            name="ck_cash_registers_initial_nonneg",
        ),
        CheckConstraint(
            "(status = 'open' AND final_amount IS NULL AND closed_at IS NULL"
            " AND expected_amount IS NULL)"
            " OR (status = 'closed' AND final_amount IS NOT NULL"
            " AND closed_at IS NOT NULL AND expected_amount IS NOT NULL)",
            name="ck_cash_registers_closed_fields",
        ),
    )

    status: Mapped[RegisterStatus] = mapped_column(
        String(20),
        default=RegisterStatus.OPEN.value,
        nullable=False,
    )

    # Opening float
    initial_amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Counted cash at closing
    final_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Computed at closing, written once
    expected_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    opened_by: Mapped[str] = mapped_column(String(64), nullable=False)

    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    closed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Closing justification
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<CashRegister {self.id}: {self.status_value}>"

    @property
    def status_value(self) -> str:
        """Status as a plain string (rows loaded from the DB hold str, not the enum)."""
        if isinstance(self.status, RegisterStatus):
            return self.status.value
        return self.status

    @property
    def is_open(self) -> bool:
        return self.status_value == RegisterStatus.OPEN.value

    @property
    def is_closed(self) -> bool:
        return self.status_value == RegisterStatus.CLOSED.value
