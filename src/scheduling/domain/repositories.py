from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, List, Optional

from src.scheduling.domain.entities import (
    Appointment,
    AppointmentSlot,
    AppointmentStatus,
    BookingInfo,
    DefaultAppointmentSlot,
    SlotTemplate,
)


class SlotTemplateRepository(ABC):

    @abstractmethod
    async def replace_for_bank(self, bank_id: int, templates: Iterable[SlotTemplate]) -> List[DefaultAppointmentSlot]:
        """Delete the bank's templates and insert `templates`, in the caller's transaction."""

    @abstractmethod
    async def list_for_bank(self, bank_id: int, *, active_only: bool = False) -> List[DefaultAppointmentSlot]:
        """Ordered by day_of_week, start_time."""


class AppointmentSlotRepository(ABC):
    """
    Capacity counters live here. `try_increment` / `try_decrement` are the
    only writers of `current_bookings`, each a single guarded UPDATE.
    """

    @abstractmethod
    async def insert_missing(self, rows: List[dict]) -> int:
        """Insert slots whose (bank, date, start) does not exist yet. Returns rows inserted."""

    @abstractmethod
    async def insert_one(self, row: dict) -> Optional[AppointmentSlot]:
        """Insert a single slot; None on (bank, date, start) conflict."""

    @abstractmethod
    async def get(self, slot_id: int) -> Optional[AppointmentSlot]:
        ...

    @abstractmethod
    async def list_between(self, bank_id: int, start: date, end: date) -> List[AppointmentSlot]:
        ...

    @abstractmethod
    async def try_increment(self, slot_id: int) -> Optional[AppointmentSlot]:
        """+1 iff available and below capacity; the updated slot, or None."""

    @abstractmethod
    async def try_decrement(self, slot_id: int) -> Optional[AppointmentSlot]:
        """-1 iff current_bookings >= 1; the updated slot, or None."""

    @abstractmethod
    async def update_guarded(
        self,
        bank_id: int,
        slot_id: int,
        *,
        max_bookings: Optional[int],
        is_available: Optional[bool],
    ) -> Optional[AppointmentSlot]:
        """Apply non-None fields unless max_bookings would drop below current_bookings."""


class AppointmentRepository(ABC):

    @abstractmethod
    async def add(self, slot: AppointmentSlot, booking: BookingInfo) -> Appointment:
        ...

    @abstractmethod
    async def get(self, appointment_id: int) -> Optional[Appointment]:
        ...

    @abstractmethod
    async def has_active_booking(self, slot_id: int, user_id: int) -> bool:
        """True if the user already holds a non-cancelled appointment on the slot."""

    @abstractmethod
    async def transition(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        *,
        user_id: Optional[int] = None,
        bank_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """Move to `target` iff the current status is one of `target.sources()`; None otherwise."""

    @abstractmethod
    async def list_for_user(self, user_id: int) -> List[Appointment]:
        ...

    @abstractmethod
    async def list_for_bank(
        self,
        bank_id: int,
        *,
        status: Optional[AppointmentStatus] = None,
        on_date: Optional[date] = None,
    ) -> List[Appointment]:
        ...
