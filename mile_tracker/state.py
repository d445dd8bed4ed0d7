"""Application state for one training session.

`TrainingState` owns the catalog, the schedule being edited and the history log,
together with the backend handle. HTTP views and CLI commands receive it by
reference; all writes go through its methods.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Mapping, Optional, TypeVar

from . import schedule as schedule_ops
from .backend import EDITABLE_WORKOUT_FIELDS, Backend, BackendResult
from .catalog import Catalog
from .config import AppConfig, CompletionPolicy, get_config
from .export import history_to_markdown, schedule_to_markdown
from .history import (
    apply_history_patch,
    build_history_entry,
    entry_from_completion,
    history_for,
    last_performance_for,
    replace_entry,
)
from .models import (
    CompletionData,
    HistoryEntry,
    PermissionLevel,
    Schedule,
    ScheduledWorkout,
    SchedulePermissions,
    ScheduleShare,
    SharedSchedule,
    ValidationError,
    WorkoutDefinition,
    WorkoutVersion,
    parse_iso_date,
    require_text,
)
from .reconcile import InstanceView, WeekView, describe_instance, describe_schedule
from .schedule import IdFactory, TransferPayload

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

OWNER_PERMISSIONS = SchedulePermissions(is_owner=True, can_edit=True, can_view=True)


class PersistenceError(RuntimeError):
    """A backend write or read failed; the message names the action for the user."""

    def __init__(self, action: str, detail: str) -> None:
        self.action = action
        self.detail = detail
        super().__init__(f"Could not {action}: {detail}. Please try again.")


class TrainingState:
    def __init__(
        self,
        backend: Backend,
        *,
        config: AppConfig | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or get_config()
        self.catalog = Catalog.seeded()
        self.schedule = Schedule.empty(self.config.week_count)
        self.history: list[HistoryEntry] = []
        self.permissions = OWNER_PERMISSIONS
        self._id_kwargs: dict[str, Any] = {"id_factory": id_factory} if id_factory else {}

    @classmethod
    def load(cls, backend: Backend, *, config: AppConfig | None = None) -> "TrainingState":
        """Build a state and pull the catalog and history from the backend."""
        state = cls(backend, config=config)
        state.refresh_catalog()
        state.refresh_history()
        return state

    def _unwrap(self, result: BackendResult[T], action: str) -> T:
        data, error = result
        if error is not None:
            LOGGER.warning("Backend call failed (%s): %s", action, error)
            raise PersistenceError(action, str(error))
        return data

    # Catalog ---------------------------------------------------------------------------

    def refresh_catalog(self) -> Catalog:
        workouts = self._unwrap(self.backend.fetch_catalog(), "load the workout library")
        self.catalog = Catalog(workouts or [])
        return self.catalog

    def workout(self, workout_id: str) -> Optional[WorkoutDefinition]:
        return self.catalog.get(workout_id)

    def create_workout(self, payload: Mapping[str, Any]) -> WorkoutDefinition:
        definition = WorkoutDefinition.from_dict({**payload, "version": 1, "is_custom": True})
        if definition.id in self.catalog:
            raise ValidationError(f"A workout with id {definition.id!r} already exists.")
        created = self._unwrap(self.backend.create_workout(definition), "create the workout")
        self.refresh_catalog()
        return created

    def edit_workout(
        self, workout_id: str, updates: Mapping[str, Any], *, edit_reason: str | None = None
    ) -> WorkoutDefinition:
        if workout_id not in self.catalog:
            raise ValidationError(f"Unknown workout {workout_id!r}.")
        unknown = sorted(set(updates) - set(EDITABLE_WORKOUT_FIELDS))
        if unknown:
            raise ValidationError(f"Cannot edit workout fields: {', '.join(unknown)}.")
        cleaned = {key: str(value).strip() for key, value in updates.items() if value is not None}
        for key in ("category", "name", "nickname"):
            if key in cleaned:
                require_text(cleaned[key], field=key)
        if not cleaned:
            raise ValidationError("Nothing to update.")
        updated = self._unwrap(
            self.backend.update_workout(workout_id, cleaned, edit_reason), "update the workout"
        )
        self.refresh_catalog()
        return updated

    def delete_workout(self, workout_id: str) -> None:
        in_schedule = any(item.workout_id == workout_id for week in self.schedule.weeks for item in week.workouts)
        if in_schedule:
            raise ValidationError("Cannot delete workout as it is used in the current training schedule.")
        self._unwrap(self.backend.delete_workout(workout_id), "delete the workout")
        self.refresh_catalog()

    def workout_versions(self, workout_id: str) -> list[WorkoutVersion]:
        return self._unwrap(self.backend.fetch_workout_versions(workout_id), "load workout versions")

    # Schedule edits --------------------------------------------------------------------

    def new_schedule(self, name: str = "") -> Schedule:
        self.schedule = Schedule.empty(self.config.week_count, name=name)
        self.permissions = OWNER_PERMISSIONS
        return self.schedule

    def place_workout(self, week_index: int, transfer: TransferPayload | str) -> Optional[ScheduledWorkout]:
        """Drop a catalog workout into a week; returns the new placement, or None for a bad week."""
        payload = transfer if isinstance(transfer, TransferPayload) else TransferPayload(workout_id=transfer)
        definition = self.catalog.get(payload.workout_id)
        if definition is None:
            raise ValidationError(f"Unknown workout {payload.workout_id!r}.")
        updated = schedule_ops.place_workout(
            self.schedule, week_index, definition, reserved_ids=self.catalog.ids, **self._id_kwargs
        )
        if updated is self.schedule:
            return None
        self.schedule = updated
        return updated.weeks[week_index].workouts[-1]

    def remove_workout(self, week_index: int, instance_index: int) -> None:
        self.schedule = schedule_ops.remove_workout(self.schedule, week_index, instance_index)

    def duplicate_workout(self, week_index: int, instance_index: int) -> Optional[ScheduledWorkout]:
        updated = schedule_ops.duplicate_workout(
            self.schedule, week_index, instance_index, reserved_ids=self.catalog.ids, **self._id_kwargs
        )
        if updated is self.schedule:
            return None
        self.schedule = updated
        return updated.weeks[week_index].workouts[instance_index + 1]

    def update_mileage(self, week_index: int, field: str, value: Any) -> None:
        self.schedule = schedule_ops.update_mileage(self.schedule, week_index, field, value)

    def set_training_start_date(self, value: Any) -> None:
        if value is None or (isinstance(value, str) and not value.strip()):
            start: Optional[date] = None
        else:
            start = parse_iso_date(value, field="training_start_date")
        self.schedule = replace(self.schedule, training_start_date=start)

    def rename_schedule(self, name: str) -> None:
        self.schedule = replace(self.schedule, name=require_text(name, field="name"))

    def complete_instance(
        self, week_index: int, instance_index: int, completion: CompletionData
    ) -> HistoryEntry:
        """
        Mark a placement completed and log it in the history.

        Accounts with view-only access are refused before anything is written. For a
        saved schedule the history entry and the placement's completed flag are
        stored in one backend transaction; an unsaved schedule only writes the entry.

        Under ``CompletionPolicy.CONFIRM`` the flag is set only after the backend has
        stored the completion. Under ``CompletionPolicy.ROLLBACK`` the flag is set
        first and reverted if the write fails. Either way a failed write leaves the
        schedule as it was and raises `PersistenceError`.
        """
        if not self.permissions.can_edit:
            raise ValidationError("You only have view access to this schedule.")
        instance = schedule_ops.get_instance(self.schedule, week_index, instance_index)
        if instance is None:
            raise ValidationError(f"No workout at week index {week_index}, position {instance_index}.")
        if instance.completed:
            raise ValidationError("That workout is already marked completed.")

        entry = entry_from_completion(instance, completion)
        completed = schedule_ops.mark_completed(
            self.schedule,
            week_index,
            instance_index,
            completed_date=completion.date,
            notes=completion.notes,
        )

        if self.config.completion_policy is CompletionPolicy.ROLLBACK:
            previous = self.schedule
            self.schedule = completed
            try:
                self.schedule, stored = self._store_completion(completed, entry)
            except PersistenceError:
                self.schedule = previous
                raise
        else:
            self.schedule, stored = self._store_completion(completed, entry)

        self.history.append(stored)
        return stored

    def _store_completion(self, completed: Schedule, entry: HistoryEntry) -> tuple[Schedule, HistoryEntry]:
        if completed.id is None:
            return completed, self._unwrap(self.backend.append_history(entry), "save workout history")
        saved, stored = self._unwrap(
            self.backend.record_completion(completed.id, completed, entry), "save workout history"
        )
        return schedule_ops.normalise_weeks(saved, self.config.week_count), stored

    # Schedule persistence --------------------------------------------------------------

    def save_schedule(self) -> Schedule:
        """Insert the schedule on first save, otherwise overwrite the stored copy."""
        require_text(self.schedule.name, field="schedule name")
        if self.schedule.id is None:
            saved = self._unwrap(self.backend.save_schedule(self.schedule), "save the schedule")
        else:
            saved = self._unwrap(
                self.backend.update_schedule(self.schedule.id, self.schedule), "update the schedule"
            )
        self.schedule = schedule_ops.normalise_weeks(saved, self.config.week_count)
        return self.schedule

    def list_schedules(self) -> list[Schedule]:
        return self._unwrap(self.backend.fetch_schedules(), "load schedules")

    def load_schedule(self, schedule_id: int) -> Schedule:
        loaded = self._unwrap(self.backend.fetch_schedule(schedule_id), "load the schedule")
        self.permissions = self._unwrap(self.backend.check_permissions(schedule_id), "check schedule permissions")
        self.schedule = schedule_ops.normalise_weeks(loaded, self.config.week_count)
        return self.schedule

    def find_schedule(self, name: str) -> Optional[Schedule]:
        for candidate in self.list_schedules():
            if candidate.name == name:
                return candidate
        return None

    def delete_schedule(self, schedule_id: int) -> None:
        self._unwrap(self.backend.delete_schedule(schedule_id), "delete the schedule")
        if self.schedule.id == schedule_id:
            self.new_schedule()

    # Sharing ---------------------------------------------------------------------------

    def _saved_schedule_id(self) -> int:
        if self.schedule.id is None:
            raise ValidationError("Save the schedule before sharing it.")
        return self.schedule.id

    def share_schedule(self, email: str, level: PermissionLevel | str = PermissionLevel.VIEW) -> ScheduleShare:
        try:
            permission = PermissionLevel(level)
        except ValueError as exc:
            raise ValidationError(f"permission must be 'view' or 'edit'; received {level!r}.") from exc
        address = require_text(email, field="email").lower()
        return self._unwrap(
            self.backend.share_schedule(self._saved_schedule_id(), address, permission), "share the schedule"
        )

    def list_shares(self) -> list[ScheduleShare]:
        return self._unwrap(self.backend.fetch_shares(self._saved_schedule_id()), "load schedule shares")

    def remove_share(self, share_id: int) -> None:
        self._unwrap(self.backend.remove_share(share_id), "remove the share")

    def shared_with_me(self) -> list[SharedSchedule]:
        return self._unwrap(self.backend.fetch_shared_schedules(), "load shared schedules")

    # History ---------------------------------------------------------------------------

    def refresh_history(self) -> list[HistoryEntry]:
        self.history = list(self._unwrap(self.backend.fetch_history(), "load workout history") or [])
        return self.history

    def add_history_entry(self, **form: Any) -> HistoryEntry:
        entry = build_history_entry(catalog=self.catalog, **form)
        stored = self._unwrap(self.backend.append_history(entry), "save workout history")
        self.history.append(stored)
        return stored

    def edit_history_entry(self, entry_id: str, patch: Mapping[str, Any]) -> HistoryEntry:
        current = next((entry for entry in self.history if entry.id == entry_id), None)
        if current is None:
            raise ValidationError(f"History entry {entry_id!r} not found.")
        updated = apply_history_patch(current, patch)
        stored = self._unwrap(self.backend.update_history(updated), "update workout history")
        self.history = replace_entry(self.history, stored)
        return stored

    def history_for(self, workout_id: str) -> list[HistoryEntry]:
        return history_for(self.history, workout_id)

    def last_performance_for(self, workout_id: str) -> Optional[HistoryEntry]:
        return last_performance_for(self.history, workout_id)

    # Views -----------------------------------------------------------------------------

    def weeks(self) -> list[WeekView]:
        return describe_schedule(self.schedule, self.catalog, self.history, self.config.day_labels)

    def instance_view(self, week_index: int, instance_index: int) -> Optional[InstanceView]:
        instance = schedule_ops.get_instance(self.schedule, week_index, instance_index)
        if instance is None:
            return None
        return describe_instance(instance, instance_index, self.catalog, self.history, self.config.day_labels)

    def schedule_markdown(self, *, generated_on: date | None = None) -> str:
        return schedule_to_markdown(
            self.schedule,
            self.catalog,
            self.history,
            title=self.config.schedule_title,
            day_labels=self.config.day_labels,
            generated_on=generated_on,
        )

    def history_markdown(self, *, generated_on: date | None = None) -> str:
        return history_to_markdown(self.history, self.catalog, generated_on=generated_on)
