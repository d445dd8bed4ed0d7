"""Pure update functions for the weekly schedule.

Every function takes a `Schedule` and returns a new one; the input is never
mutated. Out-of-range week or instance indexes leave the schedule untouched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Callable, Collection, Mapping, Optional, Sequence

from .models import (
    MILEAGE_FIELDS,
    Schedule,
    ScheduledWorkout,
    ValidationError,
    WeekSlot,
    WorkoutDefinition,
    optional_text,
    require_text,
)

LOGGER = logging.getLogger(__name__)

IdFactory = Callable[[str], str]


def _random_suffix(root_id: str) -> str:
    return f"{root_id}-{uuid.uuid4().hex[:8]}"


def new_instance_id(
    root_id: str,
    taken: Collection[str],
    *,
    id_factory: IdFactory = _random_suffix,
) -> str:
    """Generate an instance id that collides with nothing in `taken`."""
    for _ in range(100):
        candidate = id_factory(root_id)
        if candidate != root_id and candidate not in taken:
            return candidate
    raise RuntimeError(f"Could not generate a unique instance id for {root_id!r}")


def instance_ids(schedule: Schedule) -> set[str]:
    return {item.instance_id for week in schedule.weeks for item in week.workouts}


def _week_in_range(schedule: Schedule, week_index: int) -> bool:
    return 0 <= week_index < len(schedule.weeks)


def _replace_week(schedule: Schedule, week_index: int, week: WeekSlot) -> Schedule:
    weeks = list(schedule.weeks)
    weeks[week_index] = week
    return replace(schedule, weeks=tuple(weeks))


def normalise_weeks(schedule: Schedule, week_count: int) -> Schedule:
    """Pad or trim a loaded schedule to exactly `week_count` slots numbered 1..N."""
    by_number = {week.week_number: week for week in schedule.weeks}
    weeks = tuple(by_number.get(number) or WeekSlot(week_number=number) for number in range(1, week_count + 1))
    dropped = [number for number in by_number if number < 1 or number > week_count]
    if dropped:
        LOGGER.warning("Ignoring out-of-range weeks %s in schedule %r", sorted(dropped), schedule.name)
    return replace(schedule, weeks=weeks)


def place_workout(
    schedule: Schedule,
    week_index: int,
    definition: WorkoutDefinition,
    *,
    reserved_ids: Collection[str] = (),
    id_factory: IdFactory = _random_suffix,
) -> Schedule:
    """Append a new placement of `definition` to the week at `week_index`."""
    if not _week_in_range(schedule, week_index):
        LOGGER.debug("place_workout ignored: week index %s out of range", week_index)
        return schedule
    taken = instance_ids(schedule) | set(reserved_ids) | {definition.id}
    instance = ScheduledWorkout(
        instance_id=new_instance_id(definition.id, taken, id_factory=id_factory),
        original_id=definition.id,
    )
    week = schedule.weeks[week_index]
    return _replace_week(schedule, week_index, replace(week, workouts=week.workouts + (instance,)))


def remove_workout(schedule: Schedule, week_index: int, instance_index: int) -> Schedule:
    if not _week_in_range(schedule, week_index):
        return schedule
    week = schedule.weeks[week_index]
    if not 0 <= instance_index < len(week.workouts):
        return schedule
    workouts = week.workouts[:instance_index] + week.workouts[instance_index + 1 :]
    return _replace_week(schedule, week_index, replace(week, workouts=workouts))


def duplicate_workout(
    schedule: Schedule,
    week_index: int,
    instance_index: int,
    *,
    reserved_ids: Collection[str] = (),
    id_factory: IdFactory = _random_suffix,
) -> Schedule:
    """
    Insert a copy of an instance right after it.

    The copy keeps lineage to the root catalog workout (`original_id`, or the
    source's own id when it has none) and starts out not completed.
    """
    if not _week_in_range(schedule, week_index):
        return schedule
    week = schedule.weeks[week_index]
    if not 0 <= instance_index < len(week.workouts):
        return schedule
    source = week.workouts[instance_index]
    root_id = source.workout_id
    taken = instance_ids(schedule) | set(reserved_ids) | {root_id}
    copy = ScheduledWorkout(
        instance_id=new_instance_id(root_id, taken, id_factory=id_factory),
        original_id=root_id,
    )
    workouts = week.workouts[: instance_index + 1] + (copy,) + week.workouts[instance_index + 1 :]
    return _replace_week(schedule, week_index, replace(week, workouts=workouts))


def update_mileage(schedule: Schedule, week_index: int, field: str, value: Any) -> Schedule:
    """Set `mileage_goal` or `actual_mileage` as free text; blank clears the field."""
    if field not in MILEAGE_FIELDS:
        raise ValidationError(f"field must be one of {', '.join(MILEAGE_FIELDS)}; received {field!r}.")
    if not _week_in_range(schedule, week_index):
        return schedule
    week = schedule.weeks[week_index]
    return _replace_week(schedule, week_index, replace(week, **{field: optional_text(value)}))


def mark_completed(
    schedule: Schedule,
    week_index: int,
    instance_index: int,
    *,
    completed_date: date,
    notes: Optional[str] = None,
) -> Schedule:
    if not _week_in_range(schedule, week_index):
        return schedule
    week = schedule.weeks[week_index]
    if not 0 <= instance_index < len(week.workouts):
        return schedule
    instance = replace(
        week.workouts[instance_index],
        completed=True,
        completed_date=completed_date,
        completed_notes=notes,
    )
    workouts = week.workouts[:instance_index] + (instance,) + week.workouts[instance_index + 1 :]
    return _replace_week(schedule, week_index, replace(week, workouts=workouts))


def get_instance(schedule: Schedule, week_index: int, instance_index: int) -> Optional[ScheduledWorkout]:
    if not _week_in_range(schedule, week_index):
        return None
    workouts = schedule.weeks[week_index].workouts
    if not 0 <= instance_index < len(workouts):
        return None
    return workouts[instance_index]


def week_start_date(week_number: int, training_start_date: Optional[date]) -> Optional[date]:
    """Calendar date week `week_number` (1-based) starts on, or None without a start date."""
    if training_start_date is None:
        return None
    return training_start_date + timedelta(days=(week_number - 1) * 7)


def format_short_date(value: date) -> str:
    """Short month-day-year label such as 'Jan 5, 2025' (month name follows the locale)."""
    return f"{value:%b} {value.day}, {value.year}"


def day_label(instance_index: int, day_labels: Sequence[str]) -> str:
    """Infer the training day from a placement's position within its week."""
    if 0 <= instance_index < len(day_labels):
        return day_labels[instance_index]
    return f"Day {instance_index + 1}"


@dataclass(frozen=True)
class TransferPayload:
    """A workout being dragged onto (or picked into) a week."""

    workout_id: str
    source: str = "library"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "TransferPayload":
        workout_id = require_text(payload.get("workout_id"), field="workout_id")
        source = optional_text(payload.get("source")) or "library"
        if source not in {"library", "picker"}:
            raise ValidationError(f"source must be 'library' or 'picker'; received {source!r}.")
        return cls(workout_id=workout_id, source=source)
