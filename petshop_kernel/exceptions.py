"""
Typed Exception Hierarchy for the Petshop Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The till and the ledger are money. Callers (the dashboard, the checkout,
the agenda) must react to failures precisely: a wrong password is retried by
the user, an already-open register means "refresh and use the open one", a
partial completion means "retry the status update only". None of that can
depend on parsing message strings.

Every error therefore:
  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Exposes its context as attributes (register_id, field, record_id...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PetshopKernelError:

    PetshopKernelError (base)
    |
    +-- ValidationError
    |
    +-- AuthenticationError
    |
    +-- StateError
    |   +-- RegisterAlreadyOpenError
    |   +-- RegisterNotOpenError
    |   +-- RegisterNotFoundError
    |   +-- RegisterClosedError
    |   +-- AppointmentNotFoundError
    |   +-- AppointmentCancelledError
    |
    +-- StorageError
    |
    +-- CompletionError
    |   +-- LedgerWriteError
    |   +-- PartialCompletionError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_ERROR            | Amount not parseable/negative, missing field
Identity        | AUTHENTICATION_FAILED       | Password re-check failed on register open
----------------|-----------------------------|-----------------------------------------
State           | REGISTER_ALREADY_OPEN       | Open requested while a register is open
                | REGISTER_NOT_OPEN           | Close requested on a closed register
                | REGISTER_NOT_FOUND          | Register id doesn't exist
                | REGISTER_CLOSED             | Sale attempted with no open register
                | APPOINTMENT_NOT_FOUND       | Appointment id doesn't exist
                | APPOINTMENT_CANCELLED       | Completing a cancelled appointment
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_ERROR               | Store unreachable or rejected the write
----------------|-----------------------------|-----------------------------------------
Completion      | LEDGER_WRITE_FAILED         | Step 1 failed, nothing written
                | PARTIAL_COMPLETION          | Step 1 written, step 2 failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a ledger row or closed register

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        coordinator.complete_appointment(appointment_id, draft)
    except PartialCompletionError as e:
        # Revenue is recorded; only the status change is missing.
        coordinator.resume_completion(e.appointment_id)
    except LedgerWriteError as e:
        # Nothing was written; safe to run the whole completion again.
        notify_user(e.code)

    try:
        registers.open_register(amount, actor_id, password)
    except RegisterAlreadyOpenError:
        show_current_register()
    except StateError as e:
        log.warning("register_state_conflict", extra={"code": e.code})
"""


class PetshopKernelError(Exception):
    """
    Base exception for all petshop kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PETSHOP_KERNEL_ERROR"


# Input and identity


class ValidationError(PetshopKernelError):
    """Malformed or missing input. Always caller-recoverable; never mutates state."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} ({value!r}): {reason}")


class AuthenticationError(PetshopKernelError):
    """Password re-verification failed."""

    code: str = "AUTHENTICATION_FAILED"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Password verification failed for user {user_id}")


# State-related exceptions


class StateError(PetshopKernelError):
    """Operation attempted against an entity in the wrong state."""

    code: str = "INVALID_STATE"


class RegisterAlreadyOpenError(StateError):
    """A cash register is already open; only one may be open at a time."""

    code: str = "REGISTER_ALREADY_OPEN"

    def __init__(self, open_register_id: str | None = None):
        self.open_register_id = open_register_id
        if open_register_id:
            message = f"Cash register {open_register_id} is already open"
        else:
            message = "A cash register is already open"
        super().__init__(message)


class RegisterNotOpenError(StateError):
    """The target register is not open (already closed, or closed concurrently)."""

    code: str = "REGISTER_NOT_OPEN"

    def __init__(self, register_id: str):
        self.register_id = register_id
        super().__init__(f"Cash register {register_id} is not open")


class RegisterNotFoundError(StateError):
    """Register with given ID was not found."""

    code: str = "REGISTER_NOT_FOUND"

    def __init__(self, register_id: str):
        self.register_id = register_id
        super().__init__(f"Cash register not found: {register_id}")


class RegisterClosedError(StateError):
    """No register is open, so cash-affecting sales cannot be recorded."""

    code: str = "REGISTER_CLOSED"

    def __init__(self):
        super().__init__("No cash register is open; open today's register first")


class AppointmentNotFoundError(StateError):
    """Appointment with given ID was not found."""

    code: str = "APPOINTMENT_NOT_FOUND"

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment not found: {appointment_id}")


class AppointmentCancelledError(StateError):
    """Cancelled appointments cannot be completed."""

    code: str = "APPOINTMENT_CANCELLED"

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} is cancelled")


# Storage


class StorageError(PetshopKernelError):
    """The relational store is unreachable or rejected the operation."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


# Appointment completion


class CompletionError(PetshopKernelError):
    """Base exception for appointment completion failures."""

    code: str = "COMPLETION_ERROR"


class LedgerWriteError(CompletionError):
    """
    Step 1 (ledger append) failed. Nothing was written and the
    appointment status was not touched, so a full re-run is safe.
    """

    code: str = "LEDGER_WRITE_FAILED"

    def __init__(self, appointment_id: str, reason: str):
        self.appointment_id = appointment_id
        self.reason = reason
        super().__init__(
            f"Ledger entry for appointment {appointment_id} was not written: {reason}"
        )


class PartialCompletionError(CompletionError):
    """
    Step 1 succeeded but step 2 (status update) failed.

    The ledger entry `record_id` exists; the caller should retry only the
    status update (CompletionCoordinator.resume_completion).
    """

    code: str = "PARTIAL_COMPLETION"

    def __init__(self, appointment_id: str, record_id: str, reason: str):
        self.appointment_id = appointment_id
        self.record_id = record_id
        self.reason = reason
        super().__init__(
            f"Appointment {appointment_id} has ledger entry {record_id} "
            f"but its status was not updated: {reason}"
        )


# Immutability


class ImmutabilityViolationError(PetshopKernelError):
    """Attempted to modify or delete an append-only or finalized record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
