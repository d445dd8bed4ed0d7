from __future__ import annotations

from dataclasses import replace
from datetime import date

from mile_tracker.backend import SQLiteBackend
from mile_tracker.catalog import Catalog
from mile_tracker.models import HistoryEntry, PermissionLevel, Schedule
from mile_tracker.schedule import mark_completed, place_workout

OWNER = "coach@example.com"
FRIEND = "runner@example.com"


def _backend(tmp_path, account: str = OWNER) -> SQLiteBackend:
    return SQLiteBackend(tmp_path / "mile.db", account=account)


def _planned_schedule() -> Schedule:
    catalog = Catalog.seeded()
    schedule = Schedule.empty(12, name="Indoor block")
    schedule = replace(schedule, training_start_date=date(2025, 1, 6))
    schedule = place_workout(schedule, 2, catalog.get("p1"))
    schedule = place_workout(schedule, 2, catalog.get("s4"))
    return mark_completed(schedule, 2, 0, completed_date=date(2025, 1, 21), notes="good")


def test_catalog_is_seeded_once(tmp_path):
    backend = _backend(tmp_path)
    catalog, error = backend.fetch_catalog()
    assert error is None
    assert len(catalog) == 17
    # reopening must not seed twice
    again = _backend(tmp_path).fetch_catalog()
    assert again.ok
    assert len(again.data) == 17


def test_schedule_round_trip_preserves_placements(tmp_path):
    backend = _backend(tmp_path)
    schedule = _planned_schedule()
    saved, error = backend.save_schedule(schedule)
    assert error is None
    assert saved.id is not None

    loaded = backend.fetch_schedule(saved.id).data
    week = loaded.weeks[2]
    assert loaded.name == "Indoor block"
    assert loaded.training_start_date == date(2025, 1, 6)
    assert [item.workout_id for item in week.workouts] == ["p1", "s4"]
    assert week.workouts[0].completed is True
    assert week.workouts[0].completed_date == date(2025, 1, 21)
    assert week.workouts[0].instance_id == schedule.weeks[2].workouts[0].instance_id


def test_update_schedule_replaces_weeks(tmp_path):
    backend = _backend(tmp_path)
    saved = backend.save_schedule(_planned_schedule()).data
    emptied = replace(saved, weeks=Schedule.empty(12).weeks, name="Reset")
    updated = backend.update_schedule(saved.id, emptied).data
    assert updated.name == "Reset"
    assert all(not week.workouts for week in updated.weeks)



def test_missing_schedule_comes_back_as_an_error_result(tmp_path):
    backend = _backend(tmp_path)
    saved = backend.save_schedule(_planned_schedule()).data
    assert backend.delete_schedule(saved.id).ok

    data, error = backend.update_schedule(saved.id, saved)
    assert data is None
    assert str(error) == f"Schedule {saved.id} not found"
    assert str(backend.fetch_schedule(saved.id).error) == f"Schedule {saved.id} not found"


def test_update_workout_snapshots_previous_version(tmp_path):
    backend = _backend(tmp_path)
    updated, error = backend.update_workout("p1", {"rx": "400s @66s"}, "faster block")
    assert error is None
    assert updated.version == 2
    assert updated.rx == "400s @66s"

    versions = backend.fetch_workout_versions("p1").data
    assert len(versions) == 1
    assert versions[0].version_number == 1
    assert versions[0].edit_reason == "faster block"
    assert versions[0].rx.startswith("400s @68-70s")


def test_delete_workout_refused_while_scheduled(tmp_path):
    backend = _backend(tmp_path)
    backend.save_schedule(_planned_schedule())
    _, error = backend.delete_workout("p1")
    assert error is not None
    assert str(error) == "Cannot delete workout as it is used in existing training schedules"
    assert backend.delete_workout("p9").ok
    assert backend.delete_workout("p9").error is not None


def test_history_append_fetch_and_update(tmp_path):
    backend = _backend(tmp_path)
    entry = HistoryEntry(id="h1", workout_id="p1", date=date(2025, 1, 10), actual_times=("70", "71"), rating=8)
    assert backend.append_history(entry).ok
    history = backend.fetch_history().data
    assert history == [entry]

    corrected = replace(entry, rating=7, notes="wind")
    assert backend.update_history(corrected).ok
    assert backend.fetch_history().data[0].notes == "wind"

    missing = backend.update_history(replace(entry, id="nope"))
    assert missing.error is not None


def test_database_errors_come_back_as_error_results(tmp_path):
    backend = _backend(tmp_path)
    bad = HistoryEntry(id="h1", workout_id="p1", date=date(2025, 1, 10), rating=11)
    data, error = backend.append_history(bad)
    assert data is None
    assert error.action == "save workout history"
    assert backend.fetch_history().data == []


def test_sharing_grants_view_access_only(tmp_path):
    owner = _backend(tmp_path)
    friend = _backend(tmp_path, FRIEND)
    saved = owner.save_schedule(_planned_schedule()).data

    share, error = owner.share_schedule(saved.id, FRIEND.upper(), PermissionLevel.VIEW)
    assert error is None
    assert share.shared_with == FRIEND
    assert share.shared_by == OWNER

    permissions = friend.check_permissions(saved.id).data
    assert (permissions.is_owner, permissions.can_edit, permissions.can_view) == (False, False, True)
    assert friend.fetch_schedule(saved.id).ok

    refused = friend.update_schedule(saved.id, saved)
    assert str(refused.error) == "You only have view access to this schedule"

    shared = friend.fetch_shared_schedules().data
    assert [item.schedule.id for item in shared] == [saved.id]


def test_edit_share_allows_updates_and_can_be_revoked(tmp_path):
    owner = _backend(tmp_path)
    friend = _backend(tmp_path, FRIEND)
    saved = owner.save_schedule(_planned_schedule()).data
    share = owner.share_schedule(saved.id, FRIEND, PermissionLevel.EDIT).data

    assert friend.update_schedule(saved.id, replace(saved, name="Co-owned")).ok
    assert [item.id for item in owner.fetch_shares(saved.id).data] == [share.id]

    assert friend.remove_share(share.id).error is not None
    assert owner.remove_share(share.id).ok
    assert not friend.check_permissions(saved.id).data.can_view
    assert friend.fetch_schedule(saved.id).error is not None


def test_share_with_unknown_email_is_refused(tmp_path):
    owner = _backend(tmp_path)
    saved = owner.save_schedule(_planned_schedule()).data
    _, error = owner.share_schedule(saved.id, "nobody@example.com", PermissionLevel.VIEW)
    assert str(error) == "User not found with that email address"


def _completed_second_slot(schedule: Schedule) -> tuple[Schedule, HistoryEntry]:
    completed = mark_completed(schedule, 2, 1, completed_date=date(2025, 1, 23), notes="legs heavy")
    entry = HistoryEntry(id="h-s4", workout_id="s4", date=date(2025, 1, 23), notes="legs heavy", rating=6)
    return completed, entry


def test_record_completion_stores_flag_and_history_together(tmp_path):
    backend = _backend(tmp_path)
    saved = backend.save_schedule(_planned_schedule()).data
    completed, entry = _completed_second_slot(saved)

    (stored_schedule, stored_entry), error = backend.record_completion(saved.id, completed, entry)
    assert error is None
    assert stored_entry == entry
    assert stored_schedule.weeks[2].workouts[1].completed is True

    slot = backend.fetch_schedule(saved.id).data.weeks[2].workouts[1]
    assert (slot.completed, slot.completed_date, slot.completed_notes) == (True, date(2025, 1, 23), "legs heavy")
    assert backend.fetch_history().data == [entry]


def test_record_completion_rolls_back_when_history_insert_fails(tmp_path):
    backend = _backend(tmp_path)
    saved = backend.save_schedule(_planned_schedule()).data
    completed, entry = _completed_second_slot(saved)

    # rating violates the CHECK constraint after the schedule rows were rewritten
    result = backend.record_completion(saved.id, completed, replace(entry, rating=11))
    assert result.error is not None
    assert result.error.action == "save workout history"

    assert backend.fetch_schedule(saved.id).data.weeks[2].workouts[1].completed is False
    assert backend.fetch_history().data == []


def test_record_completion_refused_for_view_share(tmp_path):
    owner = _backend(tmp_path)
    friend = _backend(tmp_path, FRIEND)
    saved = owner.save_schedule(_planned_schedule()).data
    owner.share_schedule(saved.id, FRIEND, PermissionLevel.VIEW)
    completed, entry = _completed_second_slot(saved)

    _, error = friend.record_completion(saved.id, completed, entry)
    assert str(error) == "You only have view access to this schedule"
    assert friend.fetch_history().data == []
    assert owner.fetch_schedule(saved.id).data.weeks[2].workouts[1].completed is False
