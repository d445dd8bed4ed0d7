"""Workout library: the built-in seed set plus lookup helpers."""

from __future__ import annotations

from typing import Iterable, Iterator, Mapping, Optional

from .models import UNKNOWN_WORKOUT, Category, WorkoutDefinition

CATEGORY_INFO: dict[str, tuple[str, str]] = {
    "primary": (
        "Primary/Core Workouts (Tuesdays)",
        "Longer intervals, pace work, and endurance-focused sessions",
    ),
    "secondary": (
        "Secondary/Speed Workouts (Fridays)",
        "Shorter, faster intervals focused on speed and neuromuscular power",
    ),
}

_SEED_ROWS: tuple[tuple[str, str, str, str, str, str], ...] = (
    (
        "p1", "primary", "400-1000-400 Pyramid", "The Pyramid 1000",
        "2x 400m, 3x 1000m, 2x 400m",
        "400s @68-70s, 1000s @72-76s, 400s @68-70s w/ 400m recoveries",
    ),
    (
        "p2", "primary", "200-400-600-400-200 Pyramid Sets", "The Pyramid 600",
        "2 x (200-400-600-400-200)",
        "200s @31-33s, 400s @68s, 600s @70-72s w/ 200m recoveries",
    ),
    (
        "p3", "primary", "400m Alternating Recovery", "The 400 Alternator",
        "8-10 x 400m with alternating recovery",
        "Odds @68s w/ 100m recoveries, Evens @70s w/ 400m recoveries",
    ),
    (
        "p4", "primary", "800-400-200-400-800 Sandwich", "The V",
        "2x800 @72, 1x400 @68, 1x200 @32, 1x400 @68, 2x800 @72",
        "800s @72s, 400s @68s, 200s @32s w/ 400m recoveries after 800s & 400s "
        "and 200m recoveries after 200s",
    ),
    (
        "p5", "primary", "600-200 Couplets", "Dan's Couplets",
        "5 x (600-200)",
        "600s @70-72s, 200s @30-32s w/ 200m rec between, 400m rec between sets",
    ),
    (
        "p6", "primary", "400-200-800-200-400", "The W",
        "2x400, 2x200, 2x800, 2x200, 2x400",
        "400s @66-68s, 200s @31-32s, 800s @72-75s w/ 200m rec (400m after 800s)",
    ),
    (
        "p7", "primary", "600-400-200-100 Descending Ladder", "The Descender",
        "3x (600-400-200-100)",
        "600s @78s, 400s @76s, 200s @33s, 100s @16s w/ 200/400/300/400m recoveries",
    ),
    (
        "p8", "primary", "400 @ Goal", "Goal Pace Special",
        "6x 400m @goal pace",
        "400s @64-67s (goal race pace) w/ 400m recoveries",
    ),
    (
        "p9", "primary", "1000 @ Goal", "1000 Hot",
        "4x200, 1x1000, 4x150 one step",
        "200s @32s w/ 200m rec, 1000 @68s w/ 400m rec, 150s one step w/ 250m rec",
    ),
    (
        "s1", "secondary", "200m Repeats", "My Little Delights",
        "6-8 x 200m",
        "@28-32s w/ 600m recoveries - best possible average",
    ),
    (
        "s2", "secondary", "100m Strides", "Hunger Builder",
        "8 x 100m",
        "@12-14s w/ 300m recoveries - relaxed speed",
    ),
    (
        "s3", "secondary", "300-200-100 Descending Triplets", "The Triplets",
        "3 x (300-200-100)",
        "300s @48-50s, 200s @30-33s, 100s @13-15s w/ 500/600/700m recoveries",
    ),
    (
        "s4", "secondary", "150m One Step", "One Steps",
        "4-6 x 150m one step",
        "Relaxed acceleration to near-max w/ 250m recoveries",
    ),
    (
        "s5", "secondary", "400m Time Trial", "The 400 TT",
        "4 x 400m @best average",
        "@59-62s w/ 1200m recoveries - race simulation",
    ),
    (
        "s6", "secondary", "250m Repeats", "The 250s",
        "6 x 250m",
        "Fast effort w/ 650m recoveries",
    ),
    (
        "s7", "secondary", "200-400-200 Sandwich", "400 All Out",
        "4x200, 1x400, 4x200",
        "200s @ 31-32s, 400 @ 58-60s w/ 200m recoveries after 200s and 600-800m "
        "recovery after the 400",
    ),
    (
        "s8", "secondary", "300m Repeats", "The 300s",
        "6 x 300m",
        "@best possible average w/ 500m recoveries",
    ),
)

SEED_WORKOUTS: tuple[WorkoutDefinition, ...] = tuple(
    WorkoutDefinition(id=wid, category=cat, name=name, nickname=nick, description=desc, rx=rx)
    for wid, cat, name, nick, desc, rx in _SEED_ROWS
)


class Catalog:
    """Read-only view over workout definitions grouped by category."""

    def __init__(
        self,
        workouts: Iterable[WorkoutDefinition],
        category_info: Mapping[str, tuple[str, str]] | None = None,
    ) -> None:
        self._workouts: dict[str, WorkoutDefinition] = {}
        for workout in workouts:
            self._workouts[workout.id] = workout
        self._category_info = dict(category_info or CATEGORY_INFO)

    @classmethod
    def seeded(cls) -> "Catalog":
        return cls(SEED_WORKOUTS)

    def __len__(self) -> int:
        return len(self._workouts)

    def __iter__(self) -> Iterator[WorkoutDefinition]:
        return iter(self._workouts.values())

    def __contains__(self, workout_id: object) -> bool:
        return workout_id in self._workouts

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._workouts)

    def get(self, workout_id: str | None) -> Optional[WorkoutDefinition]:
        if not workout_id:
            return None
        return self._workouts.get(workout_id)

    def display_name(self, workout_id: str | None) -> str:
        """Nickname for display, or the placeholder when the id no longer resolves."""
        workout = self.get(workout_id)
        return workout.nickname if workout else UNKNOWN_WORKOUT

    def categories(self) -> list[Category]:
        """Group workouts by category; known categories first, custom ones after, by key."""
        grouped: dict[str, list[WorkoutDefinition]] = {}
        for workout in self._workouts.values():
            grouped.setdefault(workout.category, []).append(workout)

        known = [key for key in self._category_info if key in grouped]
        extra = sorted(key for key in grouped if key not in self._category_info)
        categories: list[Category] = []
        for key in known + extra:
            name, description = self._category_info.get(key, (key.replace("_", " ").title(), ""))
            categories.append(
                Category(key=key, name=name, description=description, workouts=tuple(grouped[key]))
            )
        return categories
