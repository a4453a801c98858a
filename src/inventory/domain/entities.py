from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup


class DonationSource(str, Enum):
    """Mirrors `donations.source`."""
    BLOOD_REQUEST = "blood_request"
    APPOINTMENT = "appointment"


@dataclass(frozen=True, slots=True)
class BloodStock:
    """Units of one blood group held by one bank. `units_available` never goes below zero."""
    id: int
    blood_bank_id: int
    blood_group: BloodGroup
    units_available: int
    updated_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Donation:
    """
    A completed act of giving blood. Immutable once recorded.

    Exactly one of `request_id` / `appointment_id` is expected, matching
    `source`, but neither is enforced by the table.
    """
    id: int
    donor: Actor
    blood_group: BloodGroup
    units: int
    source: DonationSource
    donated_at: datetime
    request_id: Optional[int] = None
    appointment_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class DonationDraft:
    donor: Actor
    blood_group: BloodGroup
    units: int = 1
    source: DonationSource = DonationSource.BLOOD_REQUEST
    request_id: Optional[int] = None
    appointment_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.units < 1:
            raise ValueError("units must be at least 1")
