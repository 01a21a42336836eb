"""
Module: petshop_kernel.models.financial_record
Responsibility: ORM persistence for the append-only financial ledger.
Architecture position: Kernel > Models.  May import from db/ and the
    enums of domain/dtos.py.

Invariants enforced:
    - amount > 0 (ck_financial_records_amount_positive).  Direction is carried
      by record_type, never by sign.
    - record_type in {'income', 'expense'} (ck_financial_records_type).
    - At most one record per appointment (uq_financial_records_appointment).
      This is what makes appointment completion resumable instead of
      producing duplicate revenue on retry.
    - Rows are never updated or deleted (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate appointment_id (resolved by
      CompletionCoordinator as "already recorded").
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from petshop_kernel.db.base import Base, UUIDString
from petshop_kernel.domain.dtos import RecordType


class FinancialRecord(Base):
    """
    One ledger entry.

    ``record_date`` (column ``date``) is the calendar day the transaction is
    attributed to; ``created_at`` is when the row was inserted.  The two can
    differ for back-dated manual entries.
    """

    __tablename__ = "financial_records"

    __table_args__ = (
        UniqueConstraint("appointment_id", name="uq_financial_records_appointment"),
        Index("idx_financial_records_date", "date", "created_at"),
        Index("idx_financial_records_type_date", "type", "date"),
        CheckConstraint("amount > 0", name="ck_financial_records_amount_positive"),
        CheckConstraint(
            "type IN ('income', 'expense')",
            name="ck_financial_records_type",
        ),
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    record_type: Mapped[RecordType] = mapped_column(
        "type",
        String(20),
        nullable=False,
    )

    category: Mapped[str] = mapped_column(String(100), nullable=False)

    # Stamped at write time; legacy rows may still hold NULL
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    record_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    appointment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FinancialRecord {self.id}: {self.type_value} "
            f"{self.amount} on {self.record_date}>"
        )

    @property
    def type_value(self) -> str:
        if isinstance(self.record_type, RecordType):
            return self.record_type.value
        return self.record_type
