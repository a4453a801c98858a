import asyncio

import pytest
from sqlalchemy import func, select

from src.dispatch.application.services.request_dispatcher import GEOCODE_WARNING, RequestDispatcher
from src.dispatch.domain.entities import BloodRequestDraft, DispatchStatus, RequestStatus
from src.dispatch.domain.exceptions import AlreadyAccepted
from src.dispatch.infrastructure.models import BloodRequestModel
from src.inventory.domain.exceptions import InsufficientStock
from src.inventory.infrastructure.models import DonationModel
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import (
    ForbiddenError,
    InvalidQuantity,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from tests.helpers import CENTER, RecordingGateway, near


def draft(requester, group="O+", units=1, at=CENTER, address="MG Road, Bengaluru"):
    return BloodRequestDraft(
        requester=requester,
        blood_group=BloodGroup.parse(group),
        units_needed=units,
        location=at,
        address=address,
    )


async def test_create_fans_out_to_nearby_compatible_responders(seed, dispatcher, gateway, ledger):
    requester = await seed.user(blood_group="O+")
    donor = await seed.user(at=near(0.01), blood_group="O-")
    await seed.user(at=near(0.01), blood_group="AB+")  # cannot give to O+
    await seed.user(at=near(0.50), blood_group="O+")  # too far
    ngo = await seed.ngo(at=near(0.02))
    bank = await seed.bank(at=near(0.03))

    receipt = await dispatcher.create(draft(requester))
    await dispatcher.drain()

    assert receipt.request.status is RequestStatus.ACTIVE
    assert receipt.recipients == [donor, ngo, bank]
    assert receipt.alerts_sent == 3
    assert receipt.warnings == []
    assert gateway.notified("blood_request.new") == [donor, ngo, bank]
    payload = gateway.calls[0][1]
    assert payload.data["request_id"] == receipt.request.id
    assert payload.data["blood_group"] == "O+"

    records = await dispatcher.dispatches(receipt.request.id)
    assert {r.recipient for r in records} == {donor, ngo, bank}
    assert all(r.status is DispatchStatus.DELIVERED and r.delivered_at is not None for r in records)


async def test_requester_is_never_notified_of_own_request(seed, dispatcher, gateway):
    bank = await seed.bank()
    await dispatcher.create(draft(bank))
    await dispatcher.drain()
    assert bank not in gateway.notified("blood_request.new")


async def test_dispatch_twice_notifies_nobody_twice(seed, dispatcher, gateway):
    requester = await seed.ngo()
    await seed.user(at=near(0.01))
    receipt = await dispatcher.create(draft(requester))
    await dispatcher.drain()

    again = await dispatcher.dispatch(receipt.request.id)
    await dispatcher.drain()

    assert again.recipients == []
    assert len(gateway.calls) == 1
    assert len(await dispatcher.dispatches(receipt.request.id)) == 1


async def test_stocked_bank_notified_once(seed, dispatcher, gateway, ledger):
    requester = await seed.user()
    bank = await seed.bank(at=near(0.01))
    await ledger.set(bank.id, "O+", 5)

    receipt = await dispatcher.create(draft(requester))
    await dispatcher.drain()

    assert receipt.recipients == [bank]
    assert gateway.notified("blood_request.new") == [bank]


async def test_concurrent_dispatches_claim_each_recipient_once(seed, dispatcher, gateway):
    requester = await seed.ngo()
    donors = [await seed.user(at=near(0.01 * (i + 1))) for i in range(3)]
    receipt = await dispatcher.create(draft(requester, at=None))  # geocoded from address
    await dispatcher.drain()
    gateway.calls.clear()

    await asyncio.gather(*[dispatcher.dispatch(receipt.request.id) for _ in range(4)])
    await dispatcher.drain()

    assert receipt.recipients == donors
    assert gateway.calls == []


async def test_idempotency_key_returns_same_request(seed, dispatcher, sessions):
    requester = await seed.user()
    await seed.user(at=near(0.01))

    first = await dispatcher.create(draft(requester), idempotency_key="req-42")
    second = await dispatcher.create(draft(requester), idempotency_key="req-42")
    await dispatcher.drain()

    assert first.request.id == second.request.id
    assert second.recipients == []
    async with sessions() as s:
        assert (await s.execute(select(func.count()).select_from(BloodRequestModel))).scalar_one() == 1


async def test_idempotency_key_is_scoped_to_requester(seed, dispatcher):
    alice = await seed.user()
    bob = await seed.user()

    first = await dispatcher.create(draft(alice, group="O+"), idempotency_key="k-1")
    second = await dispatcher.create(draft(bob, group="AB-", units=4), idempotency_key="k-1")

    assert second.request.id != first.request.id
    assert second.request.requester == bob
    assert second.request.blood_group is BloodGroup.AB_NEG
    assert [r.id for r in await dispatcher.list_for_requester(bob)] == [second.request.id]
    assert [r.id for r in await dispatcher.list_for_requester(alice)] == [first.request.id]

    again = await dispatcher.create(draft(bob, group="AB-", units=4), idempotency_key="k-1")
    assert again.request.id == second.request.id


async def test_idempotency_replay_after_request_closed(seed, dispatcher, sessions):
    requester = await seed.user()
    await seed.user(at=near(0.01))
    first = await dispatcher.create(draft(requester), idempotency_key="req-7")
    await dispatcher.cancel(first.request.id, requester)

    replay = await dispatcher.create(draft(requester), idempotency_key="req-7")
    await dispatcher.drain()

    assert replay.request.id == first.request.id
    assert replay.request.status is RequestStatus.CANCELLED
    assert replay.alerts_sent == 0
    async with sessions() as s:
        assert (await s.execute(select(func.count()).select_from(BloodRequestModel))).scalar_one() == 1


async def test_gateway_outage_marks_rows_failed_and_keeps_request_active(seed, sessions, geo_index, ledger):
    dispatcher = RequestDispatcher(
        sessions, geo_index=geo_index, gateway=RecordingGateway(explode=True), stock_ledger=ledger
    )
    requester = await seed.user()
    await seed.user(at=near(0.01))

    receipt = await dispatcher.create(draft(requester))
    await dispatcher.aclose()

    records = await dispatcher.dispatches(receipt.request.id)
    assert [r.status for r in records] == [DispatchStatus.FAILED]
    assert records[0].error == "gateway down"
    assert (await dispatcher.get(receipt.request.id)).status is RequestStatus.ACTIVE


async def test_partial_delivery_failure_recorded_per_recipient(seed, sessions, geo_index, ledger):
    requester = await seed.user()
    reachable = await seed.user(at=near(0.01))
    unreachable = await seed.user(at=near(0.02))
    dispatcher = RequestDispatcher(
        sessions, geo_index=geo_index, gateway=RecordingGateway(fail_for={unreachable}), stock_ledger=ledger
    )

    receipt = await dispatcher.create(draft(requester))
    await dispatcher.aclose()

    status = {r.recipient: r.status for r in await dispatcher.dispatches(receipt.request.id)}
    assert status == {reachable: DispatchStatus.DELIVERED, unreachable: DispatchStatus.FAILED}


async def test_unresolvable_address_creates_request_with_warning(seed, dispatcher, gateway):
    requester = await seed.user()
    await seed.user(at=near(0.01))

    receipt = await dispatcher.create(draft(requester, at=None, address="Nowhere Lane"))
    await dispatcher.drain()

    assert receipt.request.location is None
    assert receipt.request.status is RequestStatus.ACTIVE
    assert receipt.warnings == [GEOCODE_WARNING]
    assert receipt.alerts_sent == 0
    assert gateway.calls == []


async def test_address_is_geocoded(seed, dispatcher):
    requester = await seed.user()
    receipt = await dispatcher.create(draft(requester, at=None))
    assert receipt.request.location == CENTER


async def test_create_validation(seed, dispatcher):
    requester = await seed.user()
    with pytest.raises(InvalidQuantity):
        await dispatcher.create(draft(requester, units=0))
    with pytest.raises(ValidationError):
        await dispatcher.create(draft(requester, at=None, address="  "))


async def test_concurrent_accepts_have_one_winner(seed, dispatcher):
    requester = await seed.user()
    responders = [await seed.ngo(), await seed.bank(), await seed.user()]
    receipt = await dispatcher.create(draft(requester))

    results = await asyncio.gather(
        *[dispatcher.accept(receipt.request.id, r) for r in responders],
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 2 and all(isinstance(e, AlreadyAccepted) for e in losers)
    stored = await dispatcher.get(receipt.request.id)
    assert stored.status is RequestStatus.ACCEPTED
    assert stored.acceptor == winners[0].acceptor
    assert stored.accepted_at is not None


async def test_cannot_accept_own_or_closed_request(seed, dispatcher):
    requester = await seed.user()
    receipt = await dispatcher.create(draft(requester))

    with pytest.raises(ValidationError):
        await dispatcher.accept(receipt.request.id, requester)

    await dispatcher.cancel(receipt.request.id, requester)
    with pytest.raises(InvalidTransition):
        await dispatcher.accept(receipt.request.id, await seed.ngo())
    with pytest.raises(InvalidTransition):
        await dispatcher.accept(receipt.request.id, requester)

    with pytest.raises(NotFoundError):
        await dispatcher.accept(9999, requester)


async def test_accept_announces_to_requester_and_notified_responders(seed, dispatcher, gateway):
    requester = await seed.user()
    donor = await seed.user(at=near(0.01))
    ngo = await seed.ngo(at=near(0.02))
    receipt = await dispatcher.create(draft(requester))
    await dispatcher.drain()

    await dispatcher.accept(receipt.request.id, ngo)
    await dispatcher.drain()

    assert gateway.notified("blood_request.accepted") == [requester, donor]


async def test_cancel_after_accept_keeps_acceptor_for_audit(seed, dispatcher):
    requester = await seed.user(name="Ravi")
    bank = await seed.bank()
    receipt = await dispatcher.create(draft(requester))
    await dispatcher.accept(receipt.request.id, bank)

    cancelled = await dispatcher.cancel(receipt.request.id, requester, reason="Found a donor")

    assert cancelled.status is RequestStatus.CANCELLED
    assert cancelled.cancel_reason == "Found a donor"
    assert cancelled.last_cancel_reason == "Found a donor"
    assert cancelled.last_cancelled_by_name == "Ravi"
    assert cancelled.acceptor == bank
    assert cancelled.accepted_at is None


async def test_acceptor_may_cancel_strangers_may_not(seed, dispatcher):
    requester = await seed.user()
    acceptor = await seed.ngo(name="Red Crescent")
    stranger = await seed.bank()
    receipt = await dispatcher.create(draft(requester))
    await dispatcher.accept(receipt.request.id, acceptor)

    with pytest.raises(ForbiddenError):
        await dispatcher.cancel(receipt.request.id, stranger)

    cancelled = await dispatcher.cancel(receipt.request.id, acceptor, reason="Out of stock")
    assert cancelled.last_cancelled_by_name == "Red Crescent"

    with pytest.raises(InvalidTransition):
        await dispatcher.cancel(receipt.request.id, requester)


async def test_bank_fulfilment_debits_stock(seed, dispatcher, ledger, sessions):
    requester = await seed.user()
    bank = await seed.bank()
    await ledger.set(bank.id, "O+", 5)
    receipt = await dispatcher.create(draft(requester, units=2))
    await dispatcher.accept(receipt.request.id, bank)

    done = await dispatcher.fulfill(receipt.request.id, bank)

    assert done.status is RequestStatus.FULFILLED
    assert await ledger.units(bank.id, "O+") == 3
    async with sessions() as s:
        assert (await s.execute(select(func.count()).select_from(DonationModel))).scalar_one() == 0


async def test_bank_without_stock_cannot_fulfil(seed, dispatcher, ledger):
    requester = await seed.user()
    bank = await seed.bank()
    await ledger.set(bank.id, "O+", 1)
    receipt = await dispatcher.create(draft(requester, units=3))
    await dispatcher.accept(receipt.request.id, bank)

    with pytest.raises(InsufficientStock):
        await dispatcher.fulfill(receipt.request.id, bank)

    assert (await dispatcher.get(receipt.request.id)).status is RequestStatus.ACCEPTED
    assert await ledger.units(bank.id, "O+") == 1


async def test_donor_fulfilment_records_donation(seed, dispatcher, sessions):
    requester = await seed.ngo()
    donor = await seed.user(blood_group="O-")
    receipt = await dispatcher.create(draft(requester, group="A+", units=2))
    await dispatcher.accept(receipt.request.id, donor)

    await dispatcher.fulfill(receipt.request.id, donor)

    async with sessions() as s:
        donation = (await s.execute(select(DonationModel))).scalar_one()
    assert (donation.donor_type, donation.donor_id) == ("user", donor.id)
    assert donation.units == 2
    assert donation.source == "blood_request"
    assert donation.request_id == receipt.request.id


async def test_history_lists_donations_and_requests_newest_first(seed, dispatcher):
    donor = await seed.user(blood_group="O-")
    other_donor = await seed.user()
    ngo = await seed.ngo()

    own = await dispatcher.create(draft(donor, group="O-"))
    given = []
    for group in ("A+", "B+"):
        receipt = await dispatcher.create(draft(ngo, group=group))
        await dispatcher.accept(receipt.request.id, donor)
        await dispatcher.fulfill(receipt.request.id, donor)
        given.append(receipt.request.id)
    elsewhere = await dispatcher.create(draft(ngo))
    await dispatcher.accept(elsewhere.request.id, other_donor)
    await dispatcher.fulfill(elsewhere.request.id, other_donor)

    history = await dispatcher.history(donor)

    assert [d.request_id for d in history.donations] == list(reversed(given))
    assert all(d.donor == donor for d in history.donations)
    assert [d.blood_group for d in history.donations] == [BloodGroup.B_POS, BloodGroup.A_POS]
    assert [r.id for r in history.requests] == [own.request.id]


async def test_history_is_empty_for_new_actor(seed, dispatcher):
    history = await dispatcher.history(await seed.bank())
    assert history.donations == []
    assert history.requests == []


async def test_only_acceptor_fulfils_and_only_when_accepted(seed, dispatcher):
    requester = await seed.user()
    acceptor = await seed.user()
    receipt = await dispatcher.create(draft(requester))

    with pytest.raises(InvalidTransition):
        await dispatcher.fulfill(receipt.request.id, acceptor)

    await dispatcher.accept(receipt.request.id, acceptor)
    with pytest.raises(ForbiddenError):
        await dispatcher.fulfill(receipt.request.id, requester)


async def test_alerts_near_lists_other_active_requests_in_range(seed, dispatcher):
    me = await seed.user(at=CENTER)
    someone = await seed.ngo()
    close = await dispatcher.create(draft(someone, at=near(0.05)))
    await dispatcher.create(draft(someone, at=near(1.0)))
    await dispatcher.create(draft(me))
    closed = await dispatcher.create(draft(someone, at=near(0.01)))
    await dispatcher.cancel(closed.request.id, someone)

    alerts = await dispatcher.alerts_near(me, radius_km=10)

    assert [a.request.id for a in alerts] == [close.request.id]
    assert alerts[0].distance_km == pytest.approx(5.56, abs=0.05)


async def test_alerts_near_needs_a_location(seed, dispatcher):
    nowhere = await seed.user(at=None)
    with pytest.raises(ValidationError):
        await dispatcher.alerts_near(nowhere)


async def test_fulfilled_request_cannot_be_accepted_again(seed, dispatcher):
    requester = await seed.user()
    donor = await seed.user()
    receipt = await dispatcher.create(draft(requester))
    await dispatcher.accept(receipt.request.id, donor)
    await dispatcher.fulfill(receipt.request.id, donor)

    with pytest.raises(InvalidTransition):
        await dispatcher.accept(receipt.request.id, await seed.ngo())

    stored = await dispatcher.get(receipt.request.id)
    assert stored.status is RequestStatus.FULFILLED
    assert stored.acceptor == donor
