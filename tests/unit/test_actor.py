import pytest

from src.shared.domain.actor import Actor, ActorKind


def test_of_parses_kind_and_id():
    a = Actor.of("blood_bank", "7")
    assert a.kind is ActorKind.BLOOD_BANK
    assert a.id == 7
    assert a.is_blood_bank


def test_room_is_kind_dash_id():
    assert Actor.of("user", 12).room == "user-12"
    assert str(Actor.of("ngo", 3)) == "ngo-3"


def test_same_id_different_kind_are_different_actors():
    assert Actor.of("user", 1) != Actor.of("ngo", 1)
    assert len({Actor.of("user", 1), Actor.of("user", 1), Actor.of("blood_bank", 1)}) == 2


@pytest.mark.parametrize("kind,id_", [("donor", 1), ("user", 0), ("user", -3)])
def test_rejects_bad_identity(kind, id_):
    with pytest.raises(ValueError):
        Actor.of(kind, id_)
