"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger is append-only and a closed till is a historical record.  The
services never update or delete those rows, but a stray script or a future
screen could.  These listeners make the rules hold for any code that goes
through the ORM:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

    session.execute(update(...) / delete(...))
         |
         v
    [do_orm_execute] --> _check_bulk_statement() --> ImmutabilityViolationError

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | Rule
-----------------|-----------------------------------------------------------
FinancialRecord  | Never updated, never deleted (row or bulk statement)
CashRegister     | Never deleted; opening fields never change; a CLOSED row
                 | never changes.  The single allowed change is OPEN -> CLOSED.

The close itself is a conditional bulk UPDATE issued by RegisterService
(``WHERE status = 'open'``), so bulk UPDATEs on cash_registers pass the
statement check; the WHERE clause is what protects closed rows there.

===============================================================================
USAGE
===============================================================================

    from petshop_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (bootstrap() does it)

Tests that need to plant invalid rows may call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session
from sqlalchemy.orm.attributes import get_history

from petshop_kernel.exceptions import ImmutabilityViolationError
from petshop_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_REGISTER_OPENING_FIELDS = ("initial_amount", "opened_by", "opened_at")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_financial_record_immutability(mapper, connection, target):
    """Ledger records are immutable from creation."""
    raise _blocked(
        "FinancialRecord",
        str(target.id),
        "UPDATE",
        "Ledger records are append-only and cannot be modified",
    )


def _check_financial_record_delete(mapper, connection, target):
    raise _blocked(
        "FinancialRecord",
        str(target.id),
        "DELETE",
        "Ledger records are append-only and cannot be deleted",
    )


def _check_cash_register_immutability(mapper, connection, target):
    """
    Allow only the OPEN -> CLOSED transition on a cash register.

    Blocked:
        Any change to a register that was already CLOSED.
        Any change to the opening fields (initial_amount, opened_by, opened_at).
        CLOSED -> OPEN.
    """
    from petshop_kernel.models.cash_register import RegisterStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = status_history.deleted[0]
    elif status_history.unchanged:
        old_status = status_history.unchanged[0]
    else:
        old_status = target.status
    old_value = old_status.value if isinstance(old_status, RegisterStatus) else old_status

    if old_value == RegisterStatus.CLOSED.value:
        raise _blocked(
            "CashRegister",
            str(target.id),
            "UPDATE",
            "Closed registers are historical records and cannot be modified",
        )

    for field_name in _REGISTER_OPENING_FIELDS:
        if get_history(target, field_name).deleted:
            raise _blocked(
                "CashRegister",
                str(target.id),
                "UPDATE",
                f"Opening field {field_name} cannot change after the register is opened",
            )


def _check_cash_register_delete(mapper, connection, target):
    raise _blocked(
        "CashRegister",
        str(target.id),
        "DELETE",
        "Cash registers are never deleted",
    )


def _check_bulk_statement(orm_execute_state: ORMExecuteState):
    """Reject bulk UPDATE/DELETE statements against protected tables."""
    from petshop_kernel.models.cash_register import CashRegister
    from petshop_kernel.models.financial_record import FinancialRecord

    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    mapper = orm_execute_state.bind_mapper
    if mapper is None:
        return
    entity = mapper.class_
    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"

    if entity is FinancialRecord:
        raise _blocked(
            "FinancialRecord",
            "*",
            f"BULK {operation}",
            "Ledger records are append-only",
        )
    if entity is CashRegister and orm_execute_state.is_delete:
        raise _blocked(
            "CashRegister",
            "*",
            "BULK DELETE",
            "Cash registers are never deleted",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    from petshop_kernel.models.cash_register import CashRegister
    from petshop_kernel.models.financial_record import FinancialRecord

    listeners = (
        (FinancialRecord, "before_update", _check_financial_record_immutability),
        (FinancialRecord, "before_delete", _check_financial_record_delete),
        (CashRegister, "before_update", _check_cash_register_immutability),
        (CashRegister, "before_delete", _check_cash_register_delete),
        (Session, "do_orm_execute", _check_bulk_statement),
    )
    for target, event_name, listener_fn in listeners:
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)

    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    from petshop_kernel.models.cash_register import CashRegister
    from petshop_kernel.models.financial_record import FinancialRecord

    _safe_remove_listener(FinancialRecord, "before_update", _check_financial_record_immutability)
    _safe_remove_listener(FinancialRecord, "before_delete", _check_financial_record_delete)
    _safe_remove_listener(CashRegister, "before_update", _check_cash_register_immutability)
    _safe_remove_listener(CashRegister, "before_delete", _check_cash_register_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_statement)
