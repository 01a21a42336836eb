"""Write services and the appointment completion coordinator."""

from petshop_kernel.services.appointment_store import (
    AppointmentStore,
    SqlAppointmentStore,
)
from petshop_kernel.services.completion_coordinator import CompletionCoordinator
from petshop_kernel.services.ledger_service import LedgerService
from petshop_kernel.services.register_service import RegisterService

__all__ = [
    "AppointmentStore",
    "SqlAppointmentStore",
    "CompletionCoordinator",
    "LedgerService",
    "RegisterService",
]
