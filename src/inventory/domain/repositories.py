from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from src.inventory.domain.entities import BloodStock, Donation, DonationDraft
from src.shared.domain.blood_group import BloodGroup


class BloodStockRepository(ABC):
    """
    Per-bank, per-group unit counts.
    Every mutation is one conditional statement; callers never read-then-write.
    """

    @abstractmethod
    async def apply_delta(self, bank_id: int, group: BloodGroup, delta: int) -> Optional[int]:
        """Add `delta` if the result stays >= 0. Returns new units, or None when no row was changed."""

    @abstractmethod
    async def insert_if_absent(self, bank_id: int, group: BloodGroup, units: int) -> Optional[int]:
        """Create the row with `units`; None if a row for the pair already exists."""

    @abstractmethod
    async def upsert(self, bank_id: int, group: BloodGroup, units: int) -> int:
        """Absolute overwrite (insert or update). Returns stored units."""

    @abstractmethod
    async def list_for_bank(self, bank_id: int) -> List[BloodStock]:
        """All rows of a bank ordered by blood group."""


class DonationRepository(ABC):

    @abstractmethod
    async def add(self, draft: DonationDraft) -> Donation:
        """Insert an immutable donation row."""

    @abstractmethod
    async def list_for_donor(self, donor_type: str, donor_id: int) -> List[Donation]:
        """Newest first."""
