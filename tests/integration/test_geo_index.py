import pytest

from src.shared.domain.actor import ActorKind
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import InvalidCoordinate
from tests.helpers import CENTER, near


async def test_radius_is_inclusive_and_sorted_nearest_first(seed, geo_index):
    far = await seed.user(at=near(0.20))  # ~22 km
    close = await seed.user(at=near(0.01))  # ~1 km
    await seed.user(at=near(0.40))  # ~44 km, outside

    matches = await geo_index.find_within(CENTER, 35, ActorKind.USER)

    assert [m.entity.actor for m in matches] == [close, far]
    assert matches[0].distance_km < matches[1].distance_km
    assert all(m.distance_km <= 35 for m in matches)


async def test_equal_distance_ties_break_by_id(seed, geo_index):
    first = await seed.ngo(at=near(0.05))
    second = await seed.ngo(at=near(0.05))

    matches = await geo_index.find_within(CENTER, 10, ActorKind.NGO)

    assert [m.entity.actor for m in matches] == [first, second]


async def test_skips_unverified_suspended_and_unlocated(seed, geo_index):
    ok = await seed.user()
    await seed.user(verified=False)
    await seed.user(status="suspended")
    await seed.user(at=None)

    matches = await geo_index.find_within(CENTER, 5, ActorKind.USER)

    assert [m.entity.actor for m in matches] == [ok]


async def test_users_narrowed_to_compatible_donors(seed, geo_index):
    o_neg = await seed.user(blood_group="O-")
    await seed.user(blood_group="A+")
    await seed.user(blood_group=None)

    matches = await geo_index.find_within(CENTER, 5, ActorKind.USER, blood_group=BloodGroup.O_NEG)

    assert [m.entity.actor for m in matches] == [o_neg]
    assert matches[0].entity.blood_group is BloodGroup.O_NEG


async def test_banks_narrowed_to_positive_stock(seed, geo_index, ledger):
    stocked = await seed.bank()
    empty = await seed.bank()
    await seed.bank()
    await ledger.set(stocked.id, "B+", 4)
    await ledger.set(empty.id, "B+", 0)

    matches = await geo_index.find_within(CENTER, 5, ActorKind.BLOOD_BANK, blood_group=BloodGroup.B_POS)
    assert [m.entity.actor for m in matches] == [stocked]

    everyone = await geo_index.find_within(CENTER, 5, ActorKind.BLOOD_BANK)
    assert len(everyone) == 3


async def test_ngos_ignore_blood_group(seed, geo_index):
    ngo = await seed.ngo()
    matches = await geo_index.find_within(CENTER, 5, ActorKind.NGO, blood_group=BloodGroup.AB_NEG)
    assert [m.entity.actor for m in matches] == [ngo]


async def test_exclude_only_hits_same_kind(seed, geo_index):
    me = await seed.user()
    other = await seed.user()

    users = await geo_index.find_within(CENTER, 5, ActorKind.USER, exclude=me)
    assert [m.entity.actor for m in users] == [other]


async def test_zero_radius_finds_only_exact_location(seed, geo_index):
    here = await seed.bank()
    await seed.bank(at=near(0.001))

    matches = await geo_index.find_within(CENTER, 0, ActorKind.BLOOD_BANK)
    assert [m.entity.actor for m in matches] == [here]


async def test_negative_radius_rejected(geo_index):
    with pytest.raises(InvalidCoordinate):
        await geo_index.find_within(CENTER, -1, ActorKind.USER)


async def test_reference_pair_is_about_four_point_six_km_apart(seed, geo_index):
    from src.geo.domain.value_objects import Coordinate

    donor = await seed.user(at=Coordinate(12.9716, 77.5946))
    request_at = Coordinate(12.9352, 77.6146)

    within = await geo_index.find_within(request_at, 35, ActorKind.USER)
    assert [m.entity.actor for m in within] == [donor]
    assert within[0].distance_km == pytest.approx(4.6, abs=0.1)

    assert await geo_index.find_within(request_at, 1, ActorKind.USER) == []
