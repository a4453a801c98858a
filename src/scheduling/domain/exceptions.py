from __future__ import annotations

from src.shared.exceptions import ConflictError


class SlotFull(ConflictError):
    """The guarded increment matched no row: no capacity left, or the slot is closed."""
    code = "slot_full"


class AlreadyBooked(ConflictError):
    code = "already_booked"
