from src.dispatch.domain.entities import BloodRequest, RequestStatus
from src.scheduling.domain.entities import AppointmentStatus
from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup


def test_request_transitions():
    assert RequestStatus.ACCEPTED.sources() == {RequestStatus.ACTIVE}
    assert RequestStatus.FULFILLED.sources() == {RequestStatus.ACCEPTED}
    assert RequestStatus.CANCELLED.sources() == {RequestStatus.ACTIVE, RequestStatus.ACCEPTED}
    assert RequestStatus.ACTIVE.sources() == set()


def test_terminal_request_states_have_no_way_out():
    for terminal in (RequestStatus.FULFILLED, RequestStatus.CANCELLED):
        assert terminal.is_terminal
        assert all(terminal not in s.sources() for s in RequestStatus)


def test_appointment_transitions():
    assert AppointmentStatus.CONFIRMED.sources() == {AppointmentStatus.PENDING}
    assert AppointmentStatus.COMPLETED.sources() == {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
    assert AppointmentStatus.CANCELLED.sources() == {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
    assert AppointmentStatus.PENDING.sources() == set()
    assert AppointmentStatus.CANCELLED.is_terminal and AppointmentStatus.COMPLETED.is_terminal


def test_request_involves_requester_and_acceptor_only():
    requester, acceptor = Actor.of("user", 1), Actor.of("blood_bank", 1)
    r = BloodRequest(
        id=1,
        requester=requester,
        blood_group=BloodGroup.A_POS,
        units_needed=1,
        status=RequestStatus.ACCEPTED,
        acceptor=acceptor,
    )
    assert r.involves(requester)
    assert r.involves(acceptor)
    assert not r.involves(Actor.of("ngo", 1))
