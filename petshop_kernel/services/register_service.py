"""
RegisterService -- daily cash-register lifecycle.

Responsibility:
    Opens the day's register after re-verifying the administrator's
    password, and closes it by computing the expected cash from the ledger
    and storing it alongside the counted amount.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the presentation layer inside ``session_scope()``.

Invariants enforced:
    - At most one open register.  The service checks the latest register
      first; the partial unique index uq_cash_registers_single_open settles
      the race when two openings pass that check at the same time.
    - A register is closed exactly once.  The close is a single conditional
      UPDATE on ``status = 'open'``; a close that loses the race changes
      nothing and raises RegisterNotOpenError.
    - expected_amount is written at closing and never changed afterward.
    - Opening a register never writes a ledger record.
    - Flush-only: never commits.

Failure modes:
    - ValidationError: amount is missing, non-numeric or negative.
    - AuthenticationError: password re-verification failed.
    - RegisterAlreadyOpenError: another register is open.
    - RegisterNotFoundError / RegisterNotOpenError: bad close target.
    - StorageError: the store failed.
"""

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from petshop_kernel.config import Settings
from petshop_kernel.db.types import parse_amount
from petshop_kernel.domain.clock import Clock, SystemClock, business_today
from petshop_kernel.domain.dtos import CashRegisterInfo
from petshop_kernel.domain.identity import IdentityVerifier
from petshop_kernel.domain.reconciliation import classify_discrepancy, expected_cash
from petshop_kernel.exceptions import (
    AuthenticationError,
    RegisterAlreadyOpenError,
    RegisterClosedError,
    RegisterNotFoundError,
    RegisterNotOpenError,
    ValidationError,
)
from petshop_kernel.logging_config import LogContext, get_logger
from petshop_kernel.models.cash_register import CashRegister, RegisterStatus
from petshop_kernel.selectors.ledger_selector import LedgerSelector
from petshop_kernel.selectors.register_selector import RegisterSelector
from petshop_kernel.services.base import BaseService

logger = get_logger("services.register")

MAX_NOTES_LENGTH = 2000


class RegisterService(BaseService[CashRegister]):
    """
    Open/close state machine for the daily cash session.

    Contract:
        Returns frozen CashRegisterInfo DTOs, never ORM rows.  Validation and
        authentication happen before anything is added to the session.
    """

    def __init__(
        self,
        session: Session,
        verifier: IdentityVerifier,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._verifier = verifier
        self._settings = settings or Settings()
        self._clock = clock or SystemClock()

    def _latest_register(self) -> CashRegister | None:
        stmt = select(CashRegister).order_by(CashRegister.opened_at.desc()).limit(1)
        try:
            return self.session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            raise self._storage_error("latest_register", exc) from exc

    # =========================================================================
    # Open
    # =========================================================================

    def open_register(
        self,
        initial_amount: object,
        actor_id: str,
        password: str,
    ) -> CashRegisterInfo:
        """
        Open the day's register with ``initial_amount`` in the drawer.

        Args:
            initial_amount: Opening float (non-negative).
            actor_id: Administrator opening the register.
            password: The administrator's password, re-entered.

        Returns:
            The open register.

        Raises:
            ValidationError: If initial_amount is invalid.
            AuthenticationError: If the password does not verify.
            RegisterAlreadyOpenError: If a register is already open.
        """
        with LogContext.bind(actor_id=actor_id):
            try:
                amount = parse_amount(initial_amount, "initial_amount")
            except ValidationError as exc:
                logger.warning("register_open_rejected", extra={"reason": exc.reason})
                raise

            if not self._verifier.reverify_password(actor_id, password):
                logger.warning("register_open_rejected", extra={"reason": "authentication_failed"})
                raise AuthenticationError(actor_id)

            latest = self._latest_register()
            if latest is not None and latest.is_open:
                logger.warning(
                    "register_open_rejected",
                    extra={"reason": "already_open", "open_register_id": str(latest.id)},
                )
                raise RegisterAlreadyOpenError(str(latest.id))

            register = CashRegister(
                id=uuid4(),
                status=RegisterStatus.OPEN.value,
                initial_amount=amount,
                opened_by=actor_id,
                opened_at=self._clock.now_utc(),
            )
            self.session.add(register)
            try:
                self.session.flush()
            except IntegrityError as exc:
                # Lost the race: another open register was inserted after our check
                self.session.rollback()
                logger.warning(
                    "register_open_rejected",
                    extra={"reason": "concurrent_open"},
                )
                raise RegisterAlreadyOpenError() from exc
            except SQLAlchemyError as exc:
                raise self._storage_error("open_register", exc) from exc

            logger.info(
                "register_opened",
                extra={
                    "register_id": str(register.id),
                    "initial_amount": str(amount),
                },
            )
            return CashRegisterInfo.from_model(register)

    # =========================================================================
    # Close
    # =========================================================================

    def _expected_amount(self, register: CashRegister) -> Decimal:
        today = business_today(self._clock, self._settings.tzinfo)
        cash_label = self._settings.cash_payment_method
        records = LedgerSelector(self.session, cash_label).records_for(today)
        return expected_cash(register.initial_amount, records, today, cash_label)

    def close_register(
        self,
        register_id: UUID,
        counted_amount: object,
        actor_id: str,
        notes: str | None = None,
    ) -> CashRegisterInfo:
        """
        Close an open register with the counted cash.

        The expected amount is the opening float plus today's cash income
        minus today's cash expense.  A mismatch is reported, not refused.

        Raises:
            ValidationError: If counted_amount or notes are invalid.
            RegisterNotFoundError: If the register does not exist.
            RegisterNotOpenError: If it is already closed, including when a
                concurrent close won the race.
        """
        with LogContext.bind(actor_id=actor_id, register_id=register_id):
            try:
                counted = parse_amount(counted_amount, "counted_amount")
            except ValidationError as exc:
                logger.warning("register_close_rejected", extra={"reason": exc.reason})
                raise

            notes = notes.strip() if notes else None
            if notes and len(notes) > MAX_NOTES_LENGTH:
                raise ValidationError("notes", notes[:20] + "...", f"at most {MAX_NOTES_LENGTH} characters")

            try:
                register = self.session.get(CashRegister, register_id)
            except SQLAlchemyError as exc:
                raise self._storage_error("get_register", exc) from exc
            if register is None:
                raise RegisterNotFoundError(str(register_id))
            if not register.is_open:
                logger.warning("register_close_rejected", extra={"reason": "not_open"})
                raise RegisterNotOpenError(str(register_id))

            expected = self._expected_amount(register)

            stmt = (
                update(CashRegister)
                .where(
                    CashRegister.id == register_id,
                    CashRegister.status == RegisterStatus.OPEN.value,
                )
                .values(
                    status=RegisterStatus.CLOSED.value,
                    final_amount=counted,
                    expected_amount=expected,
                    closed_by=actor_id,
                    closed_at=self._clock.now_utc(),
                    notes=notes,
                )
                .execution_options(synchronize_session=False)
            )
            try:
                result = self.session.execute(stmt)
            except SQLAlchemyError as exc:
                raise self._storage_error("close_register", exc) from exc

            if result.rowcount != 1:
                logger.warning("register_close_rejected", extra={"reason": "concurrent_close"})
                raise RegisterNotOpenError(str(register_id))

            self.session.refresh(register)
            info = CashRegisterInfo.from_model(register)
            discrepancy = classify_discrepancy(
                counted, expected, self._settings.match_tolerance
            )
            logger.info(
                "register_closed",
                extra={
                    "register_id": str(register_id),
                    "expected_amount": str(expected),
                    "final_amount": str(counted),
                    "discrepancy": str(discrepancy.amount),
                    "discrepancy_status": discrepancy.status.value,
                },
            )
            return info

    def require_open_register(self) -> CashRegisterInfo:
        """
        The open register, for actions that move cash.

        Raises:
            RegisterClosedError: If no register is open.
        """
        register = RegisterSelector(
            self.session, self._settings.cash_payment_method
        ).open_register()
        if register is None:
            raise RegisterClosedError()
        return register
