from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import FrozenSet, Optional

from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import ValidationError


def day_of_week(d: date) -> int:
    """0 = Sunday … 6 = Saturday, the convention stored in `default_appointment_slots`."""
    return (d.weekday() + 1) % 7


class AppointmentStatus(str, Enum):
    """Mirrors `appointments.status`."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    def sources(self) -> FrozenSet["AppointmentStatus"]:
        """States from which a move into `self` is legal."""
        return _TRANSITIONS_INTO[self]

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)


_TRANSITIONS_INTO = {
    AppointmentStatus.PENDING: frozenset(),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.PENDING}),
    AppointmentStatus.CANCELLED: frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}),
    AppointmentStatus.COMPLETED: frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}),
}


@dataclass(frozen=True, slots=True)
class SlotTemplate:
    """Weekly recurring slot as submitted by a bank; validated on construction."""
    day_of_week: int
    start_time: time
    end_time: time
    max_bookings: int = 5
    is_active: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise ValidationError("day_of_week must be within 0..6", details={"day_of_week": self.day_of_week})
        if self.start_time >= self.end_time:
            raise ValidationError(
                "start_time must be before end_time",
                details={"start_time": self.start_time.isoformat(), "end_time": self.end_time.isoformat()},
            )
        if self.max_bookings <= 0:
            raise ValidationError("max_bookings must be positive", details={"max_bookings": self.max_bookings})


@dataclass(frozen=True, slots=True)
class DefaultAppointmentSlot:
    id: int
    blood_bank_id: int
    day_of_week: int
    start_time: time
    end_time: time
    max_bookings: int
    is_active: bool


@dataclass(frozen=True, slots=True)
class AppointmentSlot:
    """
    A dated, bookable slot. 0 <= current_bookings <= max_bookings always;
    current_bookings equals the number of its non-cancelled appointments.
    """
    id: int
    blood_bank_id: int
    slot_date: date
    start_time: time
    end_time: time
    max_bookings: int
    current_bookings: int
    is_available: bool

    @property
    def remaining(self) -> int:
        return max(self.max_bookings - self.current_bookings, 0)

    @property
    def is_bookable(self) -> bool:
        return self.is_available and self.current_bookings < self.max_bookings


@dataclass(frozen=True, slots=True)
class BookingInfo:
    """Snapshot of the booking user, copied onto the appointment."""
    user_id: int
    user_name: str
    blood_group: BloodGroup
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Appointment:
    id: int
    slot_id: int
    blood_bank_id: int
    user_id: int
    user_name: str
    blood_group: BloodGroup
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
