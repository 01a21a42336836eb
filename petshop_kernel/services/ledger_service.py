"""
LedgerService -- append-only writes to the financial ledger.

Responsibility:
    Validates and appends financial records: generic drafts, the financial
    page's manual income/expense form, and point-of-sale checkouts split
    across payment methods.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the presentation layer inside ``session_scope()`` and by
    CompletionCoordinator (step 1 of appointment completion).

Invariants enforced:
    - Validation precedes persistence: a draft with a missing description,
      a missing date, an unknown type, or an amount that is not a positive
      number raises ValidationError and nothing is added to the session.
    - payment_method is stamped with the cash label when unset, and the
      category with the per-type default, at write time.
    - Sales require an open register; all tenders of a sale validate before
      any of them is written.
    - Flush-only: never commits.

Failure modes:
    - ValidationError: malformed draft or tender.
    - RegisterClosedError: sale attempted with no open register.
    - StorageError: the store rejected the insert (the session is rolled back).
"""

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petshop_kernel.config import Settings
from petshop_kernel.db.types import parse_amount
from petshop_kernel.domain.clock import Clock, SystemClock, business_today
from petshop_kernel.domain.dtos import (
    FinancialRecordInfo,
    RecordDraft,
    RecordType,
    Tender,
)
from petshop_kernel.exceptions import (
    RegisterClosedError,
    ValidationError,
)
from petshop_kernel.logging_config import get_logger
from petshop_kernel.models.financial_record import FinancialRecord
from petshop_kernel.selectors.register_selector import RegisterSelector
from petshop_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class LedgerService(BaseService[FinancialRecord]):
    """
    Write side of the ledger.

    Contract:
        Every public method returns frozen FinancialRecordInfo DTOs for rows
        that have been flushed (ids and created_at are populated).
    """

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._settings = settings or Settings()
        self._clock = clock or SystemClock()

    # =========================================================================
    # Validation
    # =========================================================================

    def _default_category(self, record_type: RecordType) -> str:
        categories = self._settings.categories
        if record_type == RecordType.INCOME:
            return categories.manual_income
        return categories.manual_expense

    def _build(
        self,
        draft: RecordDraft,
        actor_id: str | None,
        appointment_id: UUID | None,
    ) -> FinancialRecord:
        """Validate ``draft`` and build the (unsaved) row."""
        description = draft.description.strip() if isinstance(draft.description, str) else ""
        if not description:
            raise ValidationError("description", draft.description, "a description is required")

        if not isinstance(draft.record_date, date) or isinstance(draft.record_date, datetime):
            raise ValidationError("date", draft.record_date, "a calendar date is required")

        try:
            record_type = RecordType(draft.record_type)
        except ValueError:
            raise ValidationError("type", draft.record_type, "must be income or expense")

        amount = parse_amount(draft.amount, "amount", allow_zero=False)

        category = (draft.category or "").strip() or self._default_category(record_type)
        payment_method = (
            (draft.payment_method or "").strip()
            or self._settings.cash_payment_method
        )

        return FinancialRecord(
            id=uuid4(),
            description=description,
            amount=amount,
            record_type=record_type.value,
            category=category,
            payment_method=payment_method,
            record_date=draft.record_date,
            appointment_id=appointment_id,
            created_by=actor_id,
            created_at=self._clock.now_utc(),
        )

    def _flush(self, operation: str, rows: Sequence[FinancialRecord]) -> None:
        self.session.add_all(rows)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "ledger_write_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise self._storage_error(operation, exc) from exc

        for row in rows:
            logger.info(
                "ledger_record_appended",
                extra={
                    "record_id": str(row.id),
                    "type": row.type_value,
                    "amount": str(row.amount),
                    "payment_method": row.payment_method,
                    "record_date": row.record_date.isoformat(),
                    "appointment_id": str(row.appointment_id) if row.appointment_id else None,
                },
            )

    # =========================================================================
    # Writes
    # =========================================================================

    def append(
        self,
        draft: RecordDraft,
        actor_id: str | None = None,
        appointment_id: UUID | None = None,
    ) -> FinancialRecordInfo:
        """
        Append one ledger record.

        Args:
            draft: The entry to write.
            actor_id: User recorded as created_by.
            appointment_id: Appointment this entry pays for, if any.  At most
                one record may reference a given appointment.

        Returns:
            The stored record.

        Raises:
            ValidationError: If the draft is malformed.  Nothing is written.
            StorageError: If the insert fails.
        """
        try:
            row = self._build(draft, actor_id, appointment_id)
        except ValidationError as exc:
            logger.warning(
                "ledger_append_rejected",
                extra={"field": exc.field, "reason": exc.reason},
            )
            raise

        self._flush("ledger_append", [row])
        return FinancialRecordInfo.from_model(row)

    def record_manual_entry(
        self,
        description: str,
        amount: object,
        record_type: RecordType | str,
        day: date,
        category: str | None = None,
        payment_method: str | None = None,
        actor_id: str | None = None,
    ) -> FinancialRecordInfo:
        """New income / new expense from the financial page."""
        draft = RecordDraft(
            description=description,
            amount=amount,
            record_type=record_type,
            record_date=day,
            category=category,
            payment_method=payment_method,
        )
        return self.append(draft, actor_id=actor_id)

    def record_sale(
        self,
        description: str,
        tenders: Sequence[Tender],
        actor_id: str | None = None,
    ) -> list[FinancialRecordInfo]:
        """
        Record a point-of-sale checkout, one income record per tender.

        A sale paid partly in cash and partly by card produces two records,
        so only the cash part is counted when the register is closed.

        Raises:
            RegisterClosedError: If no register is open.
            ValidationError: If there are no tenders or any tender is invalid.
                Nothing is written.
        """
        if RegisterSelector(self.session, self._settings.cash_payment_method).open_register() is None:
            logger.warning("sale_rejected_register_closed", extra={"actor_id": actor_id})
            raise RegisterClosedError()

        if not tenders:
            raise ValidationError("tenders", tenders, "a sale needs at least one payment")

        day = business_today(self._clock, self._settings.tzinfo)
        rows = []
        total = Decimal("0")
        for index, tender in enumerate(tenders):
            method = (tender.method or "").strip()
            if not method:
                raise ValidationError(f"tenders[{index}].method", tender.method, "a payment method is required")
            draft = RecordDraft(
                description=description,
                amount=tender.amount,
                record_type=RecordType.INCOME,
                record_date=day,
                category=self._settings.categories.sale,
                payment_method=method,
            )
            try:
                row = self._build(draft, actor_id, None)
            except ValidationError as exc:
                logger.warning(
                    "sale_rejected",
                    extra={"field": exc.field, "reason": exc.reason, "tender": index},
                )
                raise
            total += row.amount
            rows.append(row)

        self._flush("record_sale", rows)
        logger.info(
            "sale_recorded",
            extra={"tenders": len(rows), "total": str(total), "actor_id": actor_id},
        )
        return [FinancialRecordInfo.from_model(row) for row in rows]
