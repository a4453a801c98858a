"""
Blood group value object and ABO/Rh donor compatibility.
"""
from __future__ import annotations

from enum import Enum
from typing import FrozenSet


class BloodGroup(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"

    @classmethod
    def parse(cls, value: "str | BloodGroup") -> "BloodGroup":
        if isinstance(value, BloodGroup):
            return value
        try:
            return cls(value.strip().upper())
        except (ValueError, AttributeError):
            raise ValueError(f"Unknown blood group {value!r}") from None

    def donors(self) -> FrozenSet["BloodGroup"]:
        """Groups that can donate red cells to a recipient of this group."""
        return _COMPATIBLE_DONORS[self]


_COMPATIBLE_DONORS = {
    BloodGroup.O_NEG: frozenset({BloodGroup.O_NEG}),
    BloodGroup.O_POS: frozenset({BloodGroup.O_NEG, BloodGroup.O_POS}),
    BloodGroup.A_NEG: frozenset({BloodGroup.O_NEG, BloodGroup.A_NEG}),
    BloodGroup.A_POS: frozenset({BloodGroup.O_NEG, BloodGroup.O_POS, BloodGroup.A_NEG, BloodGroup.A_POS}),
    BloodGroup.B_NEG: frozenset({BloodGroup.O_NEG, BloodGroup.B_NEG}),
    BloodGroup.B_POS: frozenset({BloodGroup.O_NEG, BloodGroup.O_POS, BloodGroup.B_NEG, BloodGroup.B_POS}),
    BloodGroup.AB_NEG: frozenset({BloodGroup.O_NEG, BloodGroup.A_NEG, BloodGroup.B_NEG, BloodGroup.AB_NEG}),
    BloodGroup.AB_POS: frozenset(BloodGroup),
}
