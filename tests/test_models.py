from __future__ import annotations

from datetime import date, datetime

import pytest

from mile_tracker.models import (
    Schedule,
    ScheduledWorkout,
    ValidationError,
    clamp_rating,
    coerce_number,
    parse_iso_date,
    parse_times,
    require_text,
)


def test_parse_iso_date_accepts_dates_datetimes_and_text() -> None:
    assert parse_iso_date("2025-01-10") == date(2025, 1, 10)
    assert parse_iso_date(date(2025, 1, 10)) == date(2025, 1, 10)
    assert parse_iso_date(datetime(2025, 1, 10, 7, 30)) == date(2025, 1, 10)


@pytest.mark.parametrize("raw", ["", "10/01/2025", 20250110])
def test_parse_iso_date_rejects_garbage(raw) -> None:
    with pytest.raises(ValidationError):
        parse_iso_date(raw)


def test_clamp_rating_pins_out_of_range_values() -> None:
    assert clamp_rating(0) == 1
    assert clamp_rating(14) == 10
    assert clamp_rating("7") == 7


def test_clamp_rating_rejects_fractions_and_text() -> None:
    with pytest.raises(ValidationError):
        clamp_rating(7.5)
    with pytest.raises(ValidationError):
        clamp_rating("great")


def test_coerce_number_rejects_booleans_blanks_and_fractions_when_whole() -> None:
    assert coerce_number(" 3.5 ") == pytest.approx(3.5)
    assert coerce_number(7, allow_float=False) == 7
    with pytest.raises(ValidationError):
        coerce_number("  ")
    with pytest.raises(ValidationError):
        coerce_number("7.5", allow_float=False)
    with pytest.raises(ValidationError):
        coerce_number(True)


def test_parse_times_splits_on_commas_and_drops_blanks() -> None:
    assert parse_times("68.2, 67.9,, 3:03.3 ") == ("68.2", "67.9", "3:03.3")
    assert parse_times(["70", " ", "71"]) == ("70", "71")
    assert parse_times(None) == ()
    with pytest.raises(ValidationError):
        parse_times(68.2)


def test_require_text_strips_and_rejects_blank() -> None:
    assert require_text("  p1 ", field="workout") == "p1"
    with pytest.raises(ValidationError, match="workout is required"):
        require_text("   ", field="workout")


def test_scheduled_workout_falls_back_to_instance_id() -> None:
    legacy = ScheduledWorkout(instance_id="p3", original_id=None)
    placed = ScheduledWorkout(instance_id="p3-1a2b3c4d", original_id="p3")
    assert legacy.workout_id == "p3"
    assert placed.workout_id == "p3"


def test_schedule_from_dict_orders_weeks() -> None:
    schedule = Schedule.from_dict(
        {
            "id": "4",
            "name": "Spring",
            "training_start_date": "2025-01-06",
            "weeks": [
                {"week_number": 2, "workouts": [{"instance_id": "s1-aa", "original_id": "s1"}]},
                {"week_number": 1, "mileage_goal": " 30 ", "workouts": []},
            ],
        }
    )
    assert [week.week_number for week in schedule.weeks] == [1, 2]
    assert schedule.weeks[0].mileage_goal == "30"
    assert schedule.weeks[1].workouts[0].workout_id == "s1"
    assert schedule.id == 4
    assert schedule.training_start_date == date(2025, 1, 6)


def test_empty_schedule_numbers_weeks_from_one() -> None:
    schedule = Schedule.empty(12, name="Block A")
    assert len(schedule.weeks) == 12
    assert schedule.weeks[0].week_number == 1
    assert schedule.weeks[-1].week_number == 12
    assert not any(week.has_content for week in schedule.weeks)
