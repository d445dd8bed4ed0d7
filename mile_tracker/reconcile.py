"""Read-side joins of schedule placements and history entries against the catalog.

Nothing here mutates state; every function builds display records on demand.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Sequence

from .catalog import Catalog
from .history import history_for, last_performance_for, sorted_log
from .models import UNKNOWN_WORKOUT, HistoryEntry, Schedule, ScheduledWorkout, WorkoutDefinition
from .schedule import day_label, format_short_date, week_start_date


@dataclass(frozen=True)
class LastPerformance:
    date: date
    rating: Optional[int]

    @property
    def summary(self) -> str:
        rating = f"{self.rating}/10" if self.rating is not None else "n/a"
        return f"Last run {self.date.isoformat()} - Rating: {rating}"

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "rating": self.rating}


def _last(entry: Optional[HistoryEntry]) -> Optional[LastPerformance]:
    return LastPerformance(date=entry.date, rating=entry.rating) if entry else None


@dataclass(frozen=True)
class InstanceView:
    index: int
    day: str
    instance: ScheduledWorkout
    workout: Optional[WorkoutDefinition]
    last_performance: Optional[LastPerformance]

    @property
    def nickname(self) -> str:
        return self.workout.nickname if self.workout else UNKNOWN_WORKOUT

    @property
    def name(self) -> str:
        return self.workout.name if self.workout else ""

    def to_dict(self) -> Dict[str, Any]:
        payload = self.instance.to_dict()
        payload.update(
            {
                "index": self.index,
                "day": self.day,
                "nickname": self.nickname,
                "name": self.name,
                "description": self.workout.description if self.workout else "",
                "rx": self.workout.rx if self.workout else "",
                "last_performance": self.last_performance.to_dict() if self.last_performance else None,
            }
        )
        return payload


@dataclass(frozen=True)
class WeekView:
    week_number: int
    start_date: Optional[date]
    mileage_goal: Optional[str]
    actual_mileage: Optional[str]
    instances: tuple[InstanceView, ...]

    @property
    def has_content(self) -> bool:
        return bool(self.instances) or bool(self.mileage_goal) or bool(self.actual_mileage)

    @property
    def heading(self) -> str:
        if self.start_date is None:
            return f"Week {self.week_number}"
        return f"Week {self.week_number}: {format_short_date(self.start_date)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_number": self.week_number,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "start_label": format_short_date(self.start_date) if self.start_date else "",
            "mileage_goal": self.mileage_goal,
            "actual_mileage": self.actual_mileage,
            "workouts": [view.to_dict() for view in self.instances],
        }


def describe_instance(
    instance: ScheduledWorkout,
    index: int,
    catalog: Catalog,
    history: Sequence[HistoryEntry],
    day_labels: Sequence[str],
) -> InstanceView:
    return InstanceView(
        index=index,
        day=day_label(index, day_labels),
        instance=instance,
        workout=catalog.get(instance.workout_id),
        last_performance=_last(last_performance_for(history, instance.workout_id)),
    )


def describe_schedule(
    schedule: Schedule,
    catalog: Catalog,
    history: Sequence[HistoryEntry],
    day_labels: Sequence[str],
) -> list[WeekView]:
    return [
        WeekView(
            week_number=week.week_number,
            start_date=week_start_date(week.week_number, schedule.training_start_date),
            mileage_goal=week.mileage_goal,
            actual_mileage=week.actual_mileage,
            instances=tuple(
                describe_instance(item, index, catalog, history, day_labels)
                for index, item in enumerate(week.workouts)
            ),
        )
        for week in schedule.weeks
    ]


def describe_catalog(catalog: Catalog, history: Sequence[HistoryEntry]) -> list[Dict[str, Any]]:
    """Categories with every workout annotated by its last logged performance."""
    categories = []
    for category in catalog.categories():
        payload = category.to_dict()
        for workout_payload, workout in zip(payload["workouts"], category.workouts):
            last = _last(last_performance_for(history, workout.id))
            workout_payload["last_performance"] = last.to_dict() if last else None
        categories.append(payload)
    return categories


def describe_history(entries: Sequence[HistoryEntry], catalog: Catalog) -> list[Dict[str, Any]]:
    """The log newest first, each entry labelled with its workout or the placeholder."""
    rows = []
    for entry in sorted_log(entries):
        payload = entry.to_dict()
        workout = catalog.get(entry.workout_id)
        payload["nickname"] = workout.nickname if workout else UNKNOWN_WORKOUT
        payload["name"] = workout.name if workout else ""
        rows.append(payload)
    return rows


def workout_detail(
    workout_id: str, catalog: Catalog, history: Sequence[HistoryEntry], *, recent: int = 3
) -> Optional[Dict[str, Any]]:
    workout = catalog.get(workout_id)
    if workout is None:
        return None
    entries = history_for(history, workout_id)
    payload = workout.to_dict()
    payload["recent_history"] = [entry.to_dict() for entry in entries[:recent]]
    payload["history_count"] = len(entries)
    return payload
