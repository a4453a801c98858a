import asyncio

import pytest

from src.inventory.domain.exceptions import InsufficientStock
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import InvalidQuantity, ValidationError


async def test_credit_creates_row_then_accumulates(seed, ledger):
    bank = await seed.bank()
    assert await ledger.adjust(bank.id, "A+", 3) == 3
    assert await ledger.adjust(bank.id, BloodGroup.A_POS, 2) == 5
    assert await ledger.units(bank.id, "a+") == 5


async def test_debit_past_zero_refused_and_unchanged(seed, ledger):
    bank = await seed.bank()
    await ledger.set(bank.id, "O+", 3)

    with pytest.raises(InsufficientStock) as exc:
        await ledger.adjust(bank.id, "O+", -5)

    assert exc.value.details["available"] == 3
    assert await ledger.units(bank.id, "O+") == 3


async def test_debit_without_row_refused(seed, ledger):
    bank = await seed.bank()
    with pytest.raises(InsufficientStock):
        await ledger.adjust(bank.id, "B-", -1)
    assert await ledger.levels(bank.id) == []


async def test_concurrent_debits_never_overdraw(seed, ledger):
    bank = await seed.bank()
    await ledger.set(bank.id, "AB+", 3)

    results = await asyncio.gather(
        *[ledger.adjust(bank.id, "AB+", -1) for _ in range(6)],
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, int)) == 3
    assert all(isinstance(r, InsufficientStock) for r in results if not isinstance(r, int))
    assert await ledger.units(bank.id, "AB+") == 0


async def test_set_overwrites(seed, ledger):
    bank = await seed.bank()
    await ledger.adjust(bank.id, "A-", 9)
    assert await ledger.set(bank.id, "A-", 1) == 1
    assert await ledger.total(bank.id) == 1


async def test_rejects_zero_delta_negative_set_and_bad_group(seed, ledger):
    bank = await seed.bank()
    with pytest.raises(InvalidQuantity):
        await ledger.adjust(bank.id, "A+", 0)
    with pytest.raises(InvalidQuantity):
        await ledger.set(bank.id, "A+", -1)
    with pytest.raises(ValidationError):
        await ledger.adjust(bank.id, "Z+", 1)
