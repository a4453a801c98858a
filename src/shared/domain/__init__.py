"""
Shared Domain Layer
Pure domain contracts with no framework dependencies
"""
from src.shared.domain.actor import Actor, ActorKind
from src.shared.domain.blood_group import BloodGroup
from src.shared.domain.clock import utcnow

__all__ = [
    "Actor",
    "ActorKind",
    "BloodGroup",
    "utcnow",
]
