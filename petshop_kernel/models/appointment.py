"""
Module: petshop_kernel.models.appointment
Responsibility: ORM mapping of the scheduling side's appointments table, used
    by SqlAppointmentStore.  The till core only reads an appointment by id,
    updates its status and counts the day's appointments.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import date, time
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, Index, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from petshop_kernel.db.base import Base, UUIDString


class AppointmentStatus(str, Enum):
    """Scheduling status.  COMPLETED is the transition the till drives."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Appointment(Base):
    """A scheduled service for a client's pet."""

    __tablename__ = "appointments"

    __table_args__ = (
        Index("idx_appointments_date_status", "date", "status"),
    )

    appointment_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    start_time: Mapped[time] = mapped_column(Time, nullable=False)

    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    # Matched by name against the service catalog
    service_type: Mapped[str] = mapped_column(String(100), nullable=False)

    pet_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    client_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    pet_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[AppointmentStatus] = mapped_column(
        String(20),
        default=AppointmentStatus.PENDING.value,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<Appointment {self.id}: {self.service_type} on {self.appointment_date}>"

    @property
    def status_value(self) -> str:
        if isinstance(self.status, AppointmentStatus):
            return self.status.value
        return self.status
