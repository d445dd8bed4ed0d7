from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date
from typing import Any, Iterable, Mapping, Optional, Sequence

from .catalog import Catalog
from .models import (
    DEFAULT_RATING,
    CompletionData,
    HistoryEntry,
    ScheduledWorkout,
    ValidationError,
    clamp_rating,
    optional_text,
    parse_iso_date,
    parse_times,
    require_text,
)


def new_entry_id() -> str:
    return f"h{uuid.uuid4().hex[:16]}"


def _sort_key(entry: HistoryEntry) -> tuple[date, str]:
    return (entry.date, entry.id)


def history_for(entries: Iterable[HistoryEntry], workout_id: str) -> list[HistoryEntry]:
    """Entries logged against `workout_id`, newest first; same-day ties ordered by id, descending."""
    matches = [entry for entry in entries if entry.workout_id == workout_id]
    return sorted(matches, key=_sort_key, reverse=True)


def last_performance_for(entries: Iterable[HistoryEntry], workout_id: str) -> Optional[HistoryEntry]:
    history = history_for(entries, workout_id)
    return history[0] if history else None


def sorted_log(entries: Iterable[HistoryEntry]) -> list[HistoryEntry]:
    """The whole log, newest first."""
    return sorted(entries, key=_sort_key, reverse=True)


def build_history_entry(
    *,
    workout_id: str | None,
    date_text: Any,
    actual_times: Any = None,
    target_times: Any = None,
    notes: str | None = None,
    weather: str | None = None,
    location: str | None = None,
    rating: Any = DEFAULT_RATING,
    catalog: Catalog | None = None,
    entry_id: str | None = None,
) -> HistoryEntry:
    """
    Validate the add-entry form and build a `HistoryEntry`.

    A workout and a date are required before anything is stored. When a catalog
    is supplied the workout must exist in it.
    """
    workout = require_text(workout_id, field="workout")
    if catalog is not None and workout not in catalog:
        raise ValidationError(f"Unknown workout {workout!r}.")
    if date_text is None or (isinstance(date_text, str) and not date_text.strip()):
        raise ValidationError("date is required.")
    entry_date = parse_iso_date(date_text, field="date")
    rating_value = clamp_rating(rating) if rating not in (None, "") else None
    return HistoryEntry(
        id=entry_id or new_entry_id(),
        workout_id=workout,
        date=entry_date,
        actual_times=parse_times(actual_times, field="actual_times"),
        target_times=parse_times(target_times, field="target_times"),
        notes=optional_text(notes),
        weather=optional_text(weather),
        location=optional_text(location),
        rating=rating_value,
    )


def entry_from_completion(instance: ScheduledWorkout, completion: CompletionData) -> HistoryEntry:
    """History record for a completed placement, keyed by its root catalog workout."""
    return HistoryEntry(
        id=new_entry_id(),
        workout_id=instance.workout_id,
        date=completion.date,
        actual_times=completion.actual_times,
        target_times=completion.target_times,
        notes=completion.notes,
        weather=completion.weather,
        location=completion.location,
        rating=completion.rating,
    )


def build_completion(
    *,
    date_text: Any,
    notes: str | None = None,
    rating: Any = None,
    actual_times: Any = None,
    target_times: Any = None,
    weather: str | None = None,
    location: str | None = None,
) -> CompletionData:
    if date_text is None or (isinstance(date_text, str) and not date_text.strip()):
        completion_date = date.today()
    else:
        completion_date = parse_iso_date(date_text, field="date")
    return CompletionData(
        date=completion_date,
        notes=optional_text(notes),
        rating=clamp_rating(rating) if rating not in (None, "") else None,
        actual_times=parse_times(actual_times, field="actual_times"),
        target_times=parse_times(target_times, field="target_times"),
        weather=optional_text(weather),
        location=optional_text(location),
    )


_EDITABLE_FIELDS = ("date", "actual_times", "target_times", "notes", "weather", "location", "rating")


def apply_history_patch(entry: HistoryEntry, patch: Mapping[str, Any]) -> HistoryEntry:
    """Return a copy of `entry` with the editable fields in `patch` applied."""
    unknown = sorted(set(patch) - set(_EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Cannot edit history fields: {', '.join(unknown)}.")
    changes: dict[str, Any] = {}
    if "date" in patch:
        changes["date"] = parse_iso_date(patch["date"], field="date")
    for key in ("actual_times", "target_times"):
        if key in patch:
            changes[key] = parse_times(patch[key], field=key)
    for key in ("notes", "weather", "location"):
        if key in patch:
            changes[key] = optional_text(patch[key])
    if "rating" in patch:
        raw = patch["rating"]
        changes["rating"] = clamp_rating(raw) if raw not in (None, "") else None
    return replace(entry, **changes)


def replace_entry(entries: Sequence[HistoryEntry], updated: HistoryEntry) -> list[HistoryEntry]:
    return [updated if entry.id == updated.id else entry for entry in entries]
