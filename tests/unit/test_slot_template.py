from datetime import date, time

import pytest

from src.scheduling.domain.entities import AppointmentSlot, SlotTemplate, day_of_week
from src.shared.exceptions import ValidationError


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2024, 6, 2)) == 0  # Sunday
    assert day_of_week(date(2024, 6, 3)) == 1  # Monday
    assert day_of_week(date(2024, 6, 8)) == 6  # Saturday


@pytest.mark.parametrize(
    "kwargs",
    [
        {"day_of_week": 7, "start_time": time(9), "end_time": time(10)},
        {"day_of_week": -1, "start_time": time(9), "end_time": time(10)},
        {"day_of_week": 1, "start_time": time(10), "end_time": time(10)},
        {"day_of_week": 1, "start_time": time(11), "end_time": time(10)},
        {"day_of_week": 1, "start_time": time(9), "end_time": time(10), "max_bookings": 0},
    ],
)
def test_template_validation(kwargs):
    with pytest.raises(ValidationError):
        SlotTemplate(**kwargs)


def test_slot_remaining_and_bookable():
    slot = AppointmentSlot(
        id=1,
        blood_bank_id=1,
        slot_date=date(2024, 6, 3),
        start_time=time(9),
        end_time=time(10),
        max_bookings=3,
        current_bookings=3,
        is_available=True,
    )
    assert slot.remaining == 0
    assert not slot.is_bookable
