from __future__ import annotations

from src.shared.exceptions import ConflictError


class InsufficientStock(ConflictError):
    """A debit would take `units_available` below zero."""
    code = "insufficient_stock"
