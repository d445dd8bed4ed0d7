from __future__ import annotations

from datetime import date
from itertools import count

import pytest

from mile_tracker.catalog import Catalog
from mile_tracker.models import Schedule, ValidationError
from mile_tracker.schedule import (
    TransferPayload,
    day_label,
    duplicate_workout,
    format_short_date,
    get_instance,
    instance_ids,
    mark_completed,
    new_instance_id,
    normalise_weeks,
    place_workout,
    remove_workout,
    update_mileage,
    week_start_date,
)

CATALOG = Catalog.seeded()


def _sequential_ids():
    counter = count(1)
    return lambda root: f"{root}-{next(counter)}"


def test_place_then_remove_restores_the_week() -> None:
    schedule = Schedule.empty(12)
    placed = place_workout(schedule, 2, CATALOG.get("p1"))
    assert len(placed.weeks[2].workouts) == 1
    restored = remove_workout(placed, 2, 0)
    assert restored == schedule


def test_place_assigns_fresh_instance_ids_with_lineage() -> None:
    ids = _sequential_ids()
    schedule = Schedule.empty(4)
    schedule = place_workout(schedule, 0, CATALOG.get("p1"), id_factory=ids)
    schedule = place_workout(schedule, 0, CATALOG.get("p1"), id_factory=ids)
    first, second = schedule.weeks[0].workouts
    assert first.instance_id == "p1-1"
    assert second.instance_id == "p1-2"
    assert first.original_id == second.original_id == "p1"


def test_new_instance_id_skips_taken_ids() -> None:
    assert new_instance_id("p1", {"p1-1", "p1-2"}, id_factory=_sequential_ids()) == "p1-3"


def test_new_instance_id_gives_up_when_factory_keeps_colliding() -> None:
    with pytest.raises(RuntimeError):
        new_instance_id("p1", set(), id_factory=lambda root: root)


def test_place_never_reuses_a_catalog_id() -> None:
    reserved = CATALOG.ids
    factory = iter(["s1", "p1-x"])
    schedule = place_workout(
        Schedule.empty(1), 0, CATALOG.get("p1"), reserved_ids=reserved, id_factory=lambda root: next(factory)
    )
    assert schedule.weeks[0].workouts[0].instance_id == "p1-x"


def test_out_of_range_edits_are_no_ops() -> None:
    schedule = Schedule.empty(12)
    assert place_workout(schedule, 12, CATALOG.get("p1")) is schedule
    assert place_workout(schedule, -1, CATALOG.get("p1")) is schedule
    assert remove_workout(schedule, 0, 0) is schedule
    assert duplicate_workout(schedule, 0, 5) is schedule
    assert update_mileage(schedule, 40, "mileage_goal", "30") is schedule
    assert get_instance(schedule, 0, 0) is None


def test_duplicate_inserts_after_source_and_keeps_root_lineage() -> None:
    ids = _sequential_ids()
    schedule = place_workout(Schedule.empty(3), 1, CATALOG.get("p1"), id_factory=ids)
    schedule = mark_completed(schedule, 1, 0, completed_date=date(2025, 1, 10), notes="windy")
    schedule = duplicate_workout(schedule, 1, 0, id_factory=ids)
    schedule = duplicate_workout(schedule, 1, 1, id_factory=ids)

    workouts = schedule.weeks[1].workouts
    assert len(workouts) == 3
    assert {item.workout_id for item in workouts} == {"p1"}
    assert workouts[0].completed is True
    assert workouts[1].completed is False
    assert workouts[2].original_id == "p1"
    assert len(instance_ids(schedule)) == 3


def test_duplicate_then_remove_original_keeps_lineage() -> None:
    schedule = place_workout(Schedule.empty(2), 0, CATALOG.get("p1"))
    schedule = duplicate_workout(schedule, 0, 0)
    schedule = remove_workout(schedule, 0, 0)
    (remaining,) = schedule.weeks[0].workouts
    assert remaining.workout_id == "p1"
    assert CATALOG.display_name(remaining.workout_id) == "The Pyramid 1000"


def test_update_mileage_sets_and_clears_free_text() -> None:
    schedule = update_mileage(Schedule.empty(2), 0, "mileage_goal", " 35-40 ")
    assert schedule.weeks[0].mileage_goal == "35-40"
    cleared = update_mileage(schedule, 0, "mileage_goal", "")
    assert cleared.weeks[0].mileage_goal is None


def test_update_mileage_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        update_mileage(Schedule.empty(2), 0, "pace", "6:00")


def test_mark_completed_only_touches_the_target() -> None:
    schedule = place_workout(Schedule.empty(2), 0, CATALOG.get("s2"))
    schedule = place_workout(schedule, 0, CATALOG.get("p2"))
    done = mark_completed(schedule, 0, 1, completed_date=date(2025, 2, 1))
    assert done.weeks[0].workouts[0].completed is False
    assert done.weeks[0].workouts[1].completed_date == date(2025, 2, 1)
    assert schedule.weeks[0].workouts[1].completed is False


def test_normalise_weeks_pads_and_drops() -> None:
    short = Schedule.empty(3, name="short")
    padded = normalise_weeks(short, 5)
    assert [week.week_number for week in padded.weeks] == [1, 2, 3, 4, 5]
    trimmed = normalise_weeks(padded, 2)
    assert [week.week_number for week in trimmed.weeks] == [1, 2]


def test_week_start_dates_step_by_seven_days() -> None:
    start = date(2025, 1, 6)
    assert week_start_date(1, start) == start
    assert week_start_date(5, start) == date(2025, 2, 3)
    assert week_start_date(5, None) is None
    assert format_short_date(date(2025, 1, 5)) == "Jan 5, 2025"


def test_day_labels_follow_position() -> None:
    labels = ("Tuesday", "Friday")
    assert day_label(0, labels) == "Tuesday"
    assert day_label(1, labels) == "Friday"
    assert day_label(2, labels) == "Day 3"


def test_transfer_payload_validation() -> None:
    assert TransferPayload.from_mapping({"workout_id": "p4"}) == TransferPayload("p4", "library")
    assert TransferPayload.from_mapping({"workout_id": "s1", "source": "picker"}).source == "picker"
    with pytest.raises(ValidationError):
        TransferPayload.from_mapping({"workout_id": "p4", "source": "clipboard"})
    with pytest.raises(ValidationError):
        TransferPayload.from_mapping({})
