"""ORM models for the till kernel."""

from petshop_kernel.models.appointment import Appointment, AppointmentStatus
from petshop_kernel.models.cash_register import CashRegister, RegisterStatus
from petshop_kernel.models.financial_record import FinancialRecord

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "CashRegister",
    "RegisterStatus",
    "FinancialRecord",
]
