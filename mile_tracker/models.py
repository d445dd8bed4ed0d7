from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

UNKNOWN_WORKOUT = "Unknown Workout"
MILEAGE_FIELDS = ("mileage_goal", "actual_mileage")
RATING_BOUNDS = (1, 10)
DEFAULT_RATING = 5

__all__ = [
    "parse_iso_date",
    "coerce_number",
    "clamp_rating",
    "parse_times",
    "require_text",
    "optional_text",
    "WorkoutDefinition",
    "WorkoutVersion",
    "Category",
    "ScheduledWorkout",
    "WeekSlot",
    "Schedule",
    "HistoryEntry",
    "CompletionData",
    "PermissionLevel",
    "ScheduleShare",
    "SharedSchedule",
    "SchedulePermissions",
    "ValidationError",
]


class ValidationError(ValueError):
    """Raised when user-supplied data cannot be normalised safely."""


def parse_iso_date(value: Any, *, field: str = "date") -> date:
    """
    Parse user-supplied ISO-8601 dates.

    Accepts `datetime.date`, `datetime.datetime`, or strings. Raises `ValidationError`
    with a friendlier message if the payload cannot be parsed.
    """
    if isinstance(value, date):
        return value if not isinstance(value, datetime) else value.date()

    if not isinstance(value, str):
        raise ValidationError(
            f"{field} must be provided as YYYY-MM-DD text; received {value!r}."
        )

    candidate = value.strip()
    if not candidate:
        raise ValidationError(f"{field} cannot be empty.")

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError(
            f"{field} must be a valid ISO date (YYYY-MM-DD); received {candidate!r}."
        ) from exc

    return parsed.date()


def _optional_date(value: Any, *, field: str) -> Optional[date]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_iso_date(value, field=field)


def coerce_number(
    value: Any,
    *,
    field: str = "value",
    allow_float: bool = True,
) -> float:
    """
    Convert arbitrary input into a float.

    Booleans and blank strings are rejected. When `allow_float` is False, the coerced
    number must be whole.
    """
    if value is None:
        raise ValidationError(f"{field} is required.")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number; received {value!r}.")

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} is required.")
        try:
            number = float(stripped)
        except ValueError as exc:
            raise ValidationError(f"{field} must be a number; received {value!r}.") from exc
    else:
        raise ValidationError(f"{field} must be a number; received {value!r}.")

    if not allow_float and number != round(number):
        raise ValidationError(f"{field} must be an integer; received {value!r}.")

    return number


def clamp_rating(value: Any, *, field: str = "rating") -> int:
    """
    Coerce a workout rating into an integer between 1 and 10.

    Values outside the bounds are gently clamped, mirroring the form's min/max hints.
    """
    coerced = coerce_number(value, field=field, allow_float=False)

    lower, upper = RATING_BOUNDS
    if coerced < lower:
        return lower
    if coerced > upper:
        return upper
    return int(coerced)


def parse_times(payload: Any, *, field: str = "times") -> tuple[str, ...]:
    """
    Normalise a comma-separated list of split times ("68.2, 67.9, 3:03.3").

    Times stay free-form text; empty entries are dropped.
    """
    if payload is None:
        return ()

    if isinstance(payload, (list, tuple)):
        return tuple(str(item).strip() for item in payload if str(item).strip())

    if not isinstance(payload, str):
        raise ValidationError(
            f"{field} must be provided as comma-separated text; received {payload!r}."
        )

    entries = [chunk.strip() for chunk in payload.split(",")]
    return tuple(entry for entry in entries if entry)


def require_text(value: Any, *, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required.")
    return text


def optional_text(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return text or None


@dataclass(frozen=True)
class WorkoutDefinition:
    """A catalog workout; edits bump `version` and leave the id untouched."""

    id: str
    category: str
    name: str
    nickname: str
    description: str = ""
    rx: str = ""
    version: int = 1
    is_custom: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "name": self.name,
            "nickname": self.nickname,
            "description": self.description,
            "rx": self.rx,
            "version": self.version,
            "is_custom": self.is_custom,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkoutDefinition":
        return cls(
            id=require_text(payload.get("id"), field="id"),
            category=require_text(payload.get("category"), field="category"),
            name=require_text(payload.get("name"), field="name"),
            nickname=require_text(payload.get("nickname"), field="nickname"),
            description=str(payload.get("description") or ""),
            rx=str(payload.get("rx") or ""),
            version=int(payload.get("version") or 1),
            is_custom=bool(payload.get("is_custom", False)),
        )


@dataclass(frozen=True)
class WorkoutVersion:
    """Snapshot of a workout definition taken right before it was edited."""

    workout_id: str
    version_number: int
    name: str
    nickname: str
    category: str
    description: str = ""
    rx: str = ""
    edit_reason: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workout_id": self.workout_id,
            "version_number": self.version_number,
            "name": self.name,
            "nickname": self.nickname,
            "category": self.category,
            "description": self.description,
            "rx": self.rx,
            "edit_reason": self.edit_reason,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Category:
    key: str
    name: str
    description: str = ""
    workouts: Tuple[WorkoutDefinition, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "workouts": [workout.to_dict() for workout in self.workouts],
        }


@dataclass(frozen=True)
class ScheduledWorkout:
    """One placement of a catalog workout inside a week."""

    instance_id: str
    original_id: Optional[str]
    completed: bool = False
    completed_date: Optional[date] = None
    completed_notes: Optional[str] = None

    @property
    def workout_id(self) -> str:
        """Catalog id this placement descends from."""
        return self.original_id or self.instance_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "original_id": self.original_id,
            "completed": self.completed,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "completed_notes": self.completed_notes,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ScheduledWorkout":
        return cls(
            instance_id=require_text(payload.get("instance_id"), field="instance_id"),
            original_id=optional_text(payload.get("original_id")),
            completed=bool(payload.get("completed", False)),
            completed_date=_optional_date(payload.get("completed_date"), field="completed_date"),
            completed_notes=optional_text(payload.get("completed_notes")),
        )


@dataclass(frozen=True)
class WeekSlot:
    week_number: int
    workouts: Tuple[ScheduledWorkout, ...] = ()
    mileage_goal: Optional[str] = None
    actual_mileage: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return bool(self.workouts) or bool(self.mileage_goal) or bool(self.actual_mileage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_number": self.week_number,
            "workouts": [workout.to_dict() for workout in self.workouts],
            "mileage_goal": self.mileage_goal,
            "actual_mileage": self.actual_mileage,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WeekSlot":
        return cls(
            week_number=int(payload["week_number"]),
            workouts=tuple(ScheduledWorkout.from_dict(item) for item in payload.get("workouts") or []),
            mileage_goal=optional_text(payload.get("mileage_goal")),
            actual_mileage=optional_text(payload.get("actual_mileage")),
        )


@dataclass(frozen=True)
class Schedule:
    """A named block of week slots, numbered 1..N in fixed order."""

    weeks: Tuple[WeekSlot, ...]
    name: str = ""
    training_start_date: Optional[date] = None
    id: Optional[int] = None

    @classmethod
    def empty(cls, week_count: int, *, name: str = "") -> "Schedule":
        return cls(weeks=tuple(WeekSlot(week_number=i + 1) for i in range(week_count)), name=name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "training_start_date": (
                self.training_start_date.isoformat() if self.training_start_date else None
            ),
            "weeks": [week.to_dict() for week in self.weeks],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Schedule":
        weeks = sorted(
            (WeekSlot.from_dict(item) for item in payload.get("weeks") or []),
            key=lambda week: week.week_number,
        )
        raw_id = payload.get("id")
        return cls(
            weeks=tuple(weeks),
            name=str(payload.get("name") or ""),
            training_start_date=_optional_date(
                payload.get("training_start_date"), field="training_start_date"
            ),
            id=int(raw_id) if raw_id is not None else None,
        )


@dataclass(frozen=True)
class HistoryEntry:
    """A logged performance of a catalog workout."""

    id: str
    workout_id: str
    date: date
    actual_times: Tuple[str, ...] = ()
    target_times: Tuple[str, ...] = ()
    notes: Optional[str] = None
    weather: Optional[str] = None
    location: Optional[str] = None
    rating: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workout_id": self.workout_id,
            "date": self.date.isoformat(),
            "actual_times": list(self.actual_times),
            "target_times": list(self.target_times),
            "notes": self.notes,
            "weather": self.weather,
            "location": self.location,
            "rating": self.rating,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HistoryEntry":
        rating = payload.get("rating")
        return cls(
            id=require_text(payload.get("id"), field="id"),
            workout_id=require_text(payload.get("workout_id"), field="workout_id"),
            date=parse_iso_date(payload.get("date"), field="date"),
            actual_times=parse_times(payload.get("actual_times"), field="actual_times"),
            target_times=parse_times(payload.get("target_times"), field="target_times"),
            notes=optional_text(payload.get("notes")),
            weather=optional_text(payload.get("weather")),
            location=optional_text(payload.get("location")),
            rating=int(rating) if rating is not None else None,
        )


@dataclass(frozen=True)
class CompletionData:
    """What the athlete reports when ticking off a scheduled workout."""

    date: date
    notes: Optional[str] = None
    rating: Optional[int] = None
    actual_times: Tuple[str, ...] = field(default_factory=tuple)
    target_times: Tuple[str, ...] = field(default_factory=tuple)
    weather: Optional[str] = None
    location: Optional[str] = None


class PermissionLevel(str, Enum):
    VIEW = "view"
    EDIT = "edit"


@dataclass(frozen=True)
class ScheduleShare:
    id: int
    schedule_id: int
    shared_with: str
    shared_by: str
    permission_level: PermissionLevel

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "schedule_id": self.schedule_id,
            "shared_with": self.shared_with,
            "shared_by": self.shared_by,
            "permission_level": self.permission_level.value,
        }


@dataclass(frozen=True)
class SharedSchedule:
    """A schedule someone else owns, as seen by the account it was shared with."""

    schedule: Schedule
    share: ScheduleShare

    def to_dict(self) -> Dict[str, Any]:
        return {"schedule": self.schedule.to_dict(), "share": self.share.to_dict()}


@dataclass(frozen=True)
class SchedulePermissions:
    is_owner: bool = False
    can_edit: bool = False
    can_view: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"is_owner": self.is_owner, "can_edit": self.can_edit, "can_view": self.can_view}
