"""SQLite-backed persistence behind a `(data, error)` client contract.

Callers never see `sqlite3` exceptions: every public method returns a
`BackendResult` whose `error` is set when the operation failed or was refused.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Mapping, Optional, Protocol, TypeVar

from .catalog import SEED_WORKOUTS
from .env import get_env
from .models import (
    HistoryEntry,
    PermissionLevel,
    Schedule,
    ScheduledWorkout,
    SchedulePermissions,
    ScheduleShare,
    SharedSchedule,
    WeekSlot,
    WorkoutDefinition,
    WorkoutVersion,
    parse_iso_date,
)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DB_FILENAME = "mile_tracker.db"
DEFAULT_ACCOUNT = "athlete@localhost"
EDITABLE_WORKOUT_FIELDS = ("category", "name", "nickname", "description", "rx")
LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS workout_library (
    id TEXT PRIMARY KEY,
    category TEXT NOT NULL,
    name TEXT NOT NULL,
    nickname TEXT NOT NULL,
    description TEXT,
    rx TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    is_custom INTEGER NOT NULL DEFAULT 0,
    created_by INTEGER,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (created_by) REFERENCES accounts(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS workout_versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workout_id TEXT NOT NULL,
    version_number INTEGER NOT NULL,
    name TEXT NOT NULL,
    nickname TEXT NOT NULL,
    description TEXT,
    rx TEXT,
    category TEXT NOT NULL,
    edit_reason TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (workout_id) REFERENCES workout_library(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS training_schedules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    training_start_date TEXT,
    user_id INTEGER NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS schedule_weeks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    schedule_id INTEGER NOT NULL,
    week_number INTEGER NOT NULL,
    mileage_goal TEXT,
    actual_mileage TEXT,
    UNIQUE (schedule_id, week_number),
    FOREIGN KEY (schedule_id) REFERENCES training_schedules(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS schedule_workouts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    week_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    instance_id TEXT NOT NULL,
    workout_id TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    completed_date TEXT,
    completed_notes TEXT,
    FOREIGN KEY (week_id) REFERENCES schedule_weeks(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS workout_history (
    id TEXT PRIMARY KEY,
    workout_id TEXT NOT NULL,
    date TEXT NOT NULL,
    actual_times TEXT NOT NULL DEFAULT '[]',
    target_times TEXT NOT NULL DEFAULT '[]',
    notes TEXT,
    weather TEXT,
    location TEXT,
    rating INTEGER CHECK (rating IS NULL OR rating BETWEEN 1 AND 10),
    user_id INTEGER NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS schedule_shares (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    schedule_id INTEGER NOT NULL,
    shared_with_user_id INTEGER NOT NULL,
    shared_by_user_id INTEGER NOT NULL,
    permission_level TEXT NOT NULL CHECK (permission_level IN ('view', 'edit')),
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (schedule_id, shared_with_user_id),
    FOREIGN KEY (schedule_id) REFERENCES training_schedules(id) ON DELETE CASCADE,
    FOREIGN KEY (shared_with_user_id) REFERENCES accounts(id) ON DELETE CASCADE,
    FOREIGN KEY (shared_by_user_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_schedule_workouts_workout
    ON schedule_workouts (workout_id);

CREATE INDEX IF NOT EXISTS idx_workout_history_user_date
    ON workout_history (user_id, date);
"""


@dataclass(frozen=True)
class BackendError:
    action: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class BackendResult(Generic[T]):
    """Response pair returned by every backend call; unpacks as `data, error`."""

    data: Optional[T] = None
    error: Optional[BackendError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __iter__(self) -> Iterator[Any]:
        yield self.data
        yield self.error


class Backend(Protocol):
    """Operations the application state consumes from the persistence service."""

    account: str

    def fetch_catalog(self) -> BackendResult[list[WorkoutDefinition]]: ...

    def create_workout(self, workout: WorkoutDefinition) -> BackendResult[WorkoutDefinition]: ...

    def update_workout(
        self, workout_id: str, updates: Mapping[str, Any], edit_reason: str | None = None
    ) -> BackendResult[WorkoutDefinition]: ...

    def delete_workout(self, workout_id: str) -> BackendResult[str]: ...

    def fetch_workout_versions(self, workout_id: str) -> BackendResult[list[WorkoutVersion]]: ...

    def fetch_schedules(self) -> BackendResult[list[Schedule]]: ...

    def fetch_schedule(self, schedule_id: int) -> BackendResult[Schedule]: ...

    def save_schedule(self, schedule: Schedule) -> BackendResult[Schedule]: ...

    def update_schedule(self, schedule_id: int, schedule: Schedule) -> BackendResult[Schedule]: ...

    def delete_schedule(self, schedule_id: int) -> BackendResult[int]: ...

    def fetch_history(self) -> BackendResult[list[HistoryEntry]]: ...

    def append_history(self, entry: HistoryEntry) -> BackendResult[HistoryEntry]: ...

    def record_completion(
        self, schedule_id: int, schedule: Schedule, entry: HistoryEntry
    ) -> BackendResult[tuple[Schedule, HistoryEntry]]: ...

    def update_history(self, entry: HistoryEntry) -> BackendResult[HistoryEntry]: ...

    def share_schedule(
        self, schedule_id: int, email: str, level: PermissionLevel = PermissionLevel.VIEW
    ) -> BackendResult[ScheduleShare]: ...

    def fetch_shares(self, schedule_id: int) -> BackendResult[list[ScheduleShare]]: ...

    def remove_share(self, share_id: int) -> BackendResult[int]: ...

    def fetch_shared_schedules(self) -> BackendResult[list[SharedSchedule]]: ...

    def check_permissions(self, schedule_id: int) -> BackendResult[SchedulePermissions]: ...


class _Refused(Exception):
    """Raised inside a transaction to abort it with a user-facing reason."""


def _data_dir() -> Path:
    override = get_env("DATA_DIR")
    base = Path(override).expanduser() if override else DEFAULT_DATA_DIR
    base.mkdir(parents=True, exist_ok=True)
    return base


def database_file() -> Path:
    override = get_env("DB_FILE")
    if override:
        path = Path(override).expanduser()
    else:
        path = _data_dir() / DEFAULT_DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def current_account() -> str:
    return (get_env("ACCOUNT") or DEFAULT_ACCOUNT).strip().lower()


def _workout_from_row(row: sqlite3.Row) -> WorkoutDefinition:
    return WorkoutDefinition(
        id=row["id"],
        category=row["category"],
        name=row["name"],
        nickname=row["nickname"],
        description=row["description"] or "",
        rx=row["rx"] or "",
        version=int(row["version"]),
        is_custom=bool(row["is_custom"]),
    )


def _version_from_row(row: sqlite3.Row) -> WorkoutVersion:
    return WorkoutVersion(
        workout_id=row["workout_id"],
        version_number=int(row["version_number"]),
        name=row["name"],
        nickname=row["nickname"],
        category=row["category"],
        description=row["description"] or "",
        rx=row["rx"] or "",
        edit_reason=row["edit_reason"],
        created_at=row["created_at"],
    )


def _history_from_row(row: sqlite3.Row) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"],
        workout_id=row["workout_id"],
        date=parse_iso_date(row["date"], field="date"),
        actual_times=tuple(json.loads(row["actual_times"] or "[]")),
        target_times=tuple(json.loads(row["target_times"] or "[]")),
        notes=row["notes"],
        weather=row["weather"],
        location=row["location"],
        rating=row["rating"],
    )


def _share_from_row(row: sqlite3.Row) -> ScheduleShare:
    return ScheduleShare(
        id=int(row["id"]),
        schedule_id=int(row["schedule_id"]),
        shared_with=row["shared_with"],
        shared_by=row["shared_by"],
        permission_level=PermissionLevel(row["permission_level"]),
    )


_SHARE_SELECT = """
    SELECT s.id, s.schedule_id, s.permission_level,
           w.email AS shared_with, b.email AS shared_by
    FROM schedule_shares s
    JOIN accounts w ON w.id = s.shared_with_user_id
    JOIN accounts b ON b.id = s.shared_by_user_id
"""


class SQLiteBackend:
    """Relational backend for one signed-in account, stored in a local SQLite file."""

    def __init__(self, db_path: Path | str | None = None, *, account: str | None = None) -> None:
        self.db_path = Path(db_path).expanduser() if db_path is not None else database_file()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.account = (account or current_account()).strip().lower()
        self._ensure_database()

    @contextmanager
    def open_database(self) -> Iterator[sqlite3.Connection]:
        """Context manager yielding a SQLite connection with foreign keys enforced."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_database(self) -> None:
        with self.open_database() as conn:
            conn.executescript(SCHEMA)
            with conn:
                seeded = conn.execute("SELECT COUNT(*) FROM workout_library").fetchone()[0]
                if not seeded:
                    conn.executemany(
                        """
                        INSERT INTO workout_library
                            (id, category, name, nickname, description, rx, version, is_custom)
                        VALUES (?, ?, ?, ?, ?, ?, 1, 0)
                        """,
                        [
                            (w.id, w.category, w.name, w.nickname, w.description, w.rx)
                            for w in SEED_WORKOUTS
                        ],
                    )
                    LOGGER.info("Seeded %d workouts into %s", len(SEED_WORKOUTS), self.db_path)
                conn.execute("INSERT OR IGNORE INTO accounts (email) VALUES (?)", (self.account,))

    def _run(self, action: str, operation: Callable[[sqlite3.Connection], T]) -> BackendResult[T]:
        """Execute `operation` in one transaction and fold failures into the result."""
        try:
            with self.open_database() as conn:
                with conn:
                    return BackendResult(data=operation(conn))
        except _Refused as exc:
            LOGGER.info("%s refused: %s", action, exc)
            return BackendResult(error=BackendError(action=action, message=str(exc)))
        except sqlite3.Error as exc:
            LOGGER.warning("%s failed: %s", action, exc)
            return BackendResult(error=BackendError(action=action, message=str(exc)))

    def _account_id(self, conn: sqlite3.Connection, email: str | None = None) -> Optional[int]:
        row = conn.execute(
            "SELECT id FROM accounts WHERE email = ?", ((email or self.account).strip().lower(),)
        ).fetchone()
        return int(row["id"]) if row else None

    def _my_id(self, conn: sqlite3.Connection) -> int:
        account_id = self._account_id(conn)
        if account_id is None:
            raise _Refused("User not authenticated")
        return account_id

    # Workout library -------------------------------------------------------------------

    def fetch_catalog(self) -> BackendResult[list[WorkoutDefinition]]:
        def operation(conn: sqlite3.Connection) -> list[WorkoutDefinition]:
            rows = conn.execute("SELECT * FROM workout_library ORDER BY category, rowid").fetchall()
            return [_workout_from_row(row) for row in rows]

        return self._run("fetch catalog", operation)

    def create_workout(self, workout: WorkoutDefinition) -> BackendResult[WorkoutDefinition]:
        def operation(conn: sqlite3.Connection) -> WorkoutDefinition:
            if conn.execute("SELECT 1 FROM workout_library WHERE id = ?", (workout.id,)).fetchone():
                raise _Refused(f"A workout with id {workout.id!r} already exists")
            conn.execute(
                """
                INSERT INTO workout_library
                    (id, category, name, nickname, description, rx, version, is_custom, created_by)
                VALUES (?, ?, ?, ?, ?, ?, 1, 1, ?)
                """,
                (
                    workout.id,
                    workout.category,
                    workout.name,
                    workout.nickname,
                    workout.description,
                    workout.rx,
                    self._my_id(conn),
                ),
            )
            row = conn.execute("SELECT * FROM workout_library WHERE id = ?", (workout.id,)).fetchone()
            return _workout_from_row(row)

        return self._run("create workout", operation)

    def update_workout(
        self, workout_id: str, updates: Mapping[str, Any], edit_reason: str | None = None
    ) -> BackendResult[WorkoutDefinition]:
        """Snapshot the current definition into workout_versions, then apply `updates`."""

        def operation(conn: sqlite3.Connection) -> WorkoutDefinition:
            current = conn.execute("SELECT * FROM workout_library WHERE id = ?", (workout_id,)).fetchone()
            if current is None:
                raise _Refused(f"Workout {workout_id!r} not found")
            conn.execute(
                """
                INSERT INTO workout_versions
                    (workout_id, version_number, name, nickname, description, rx, category, edit_reason)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workout_id,
                    current["version"],
                    current["name"],
                    current["nickname"],
                    current["description"],
                    current["rx"],
                    current["category"],
                    edit_reason,
                ),
            )
            columns = [key for key in EDITABLE_WORKOUT_FIELDS if key in updates]
            assignments = [f"{key} = ?" for key in columns] + ["version = ?"]
            params: list[Any] = [updates[key] for key in columns]
            params.append(int(current["version"]) + 1)
            params.append(workout_id)
            conn.execute(f"UPDATE workout_library SET {', '.join(assignments)} WHERE id = ?", params)
            row = conn.execute("SELECT * FROM workout_library WHERE id = ?", (workout_id,)).fetchone()
            return _workout_from_row(row)

        return self._run("update workout", operation)

    def delete_workout(self, workout_id: str) -> BackendResult[str]:
        def operation(conn: sqlite3.Connection) -> str:
            in_use = conn.execute(
                "SELECT id FROM schedule_workouts WHERE workout_id = ? LIMIT 1", (workout_id,)
            ).fetchone()
            if in_use:
                raise _Refused("Cannot delete workout as it is used in existing training schedules")
            cursor = conn.execute("DELETE FROM workout_library WHERE id = ?", (workout_id,))
            if cursor.rowcount == 0:
                raise _Refused(f"Workout {workout_id!r} not found")
            return workout_id

        return self._run("delete workout", operation)

    def fetch_workout_versions(self, workout_id: str) -> BackendResult[list[WorkoutVersion]]:
        def operation(conn: sqlite3.Connection) -> list[WorkoutVersion]:
            rows = conn.execute(
                "SELECT * FROM workout_versions WHERE workout_id = ? ORDER BY version_number DESC",
                (workout_id,),
            ).fetchall()
            return [_version_from_row(row) for row in rows]

        return self._run("fetch workout versions", operation)

    # Schedules -------------------------------------------------------------------------

    def _load_schedule(self, conn: sqlite3.Connection, schedule_id: int) -> Optional[Schedule]:
        header = conn.execute("SELECT * FROM training_schedules WHERE id = ?", (schedule_id,)).fetchone()
        if header is None:
            return None
        weeks: list[WeekSlot] = []
        for week_row in conn.execute(
            "SELECT * FROM schedule_weeks WHERE schedule_id = ? ORDER BY week_number", (schedule_id,)
        ).fetchall():
            placements = conn.execute(
                "SELECT * FROM schedule_workouts WHERE week_id = ? ORDER BY position, id",
                (week_row["id"],),
            ).fetchall()
            weeks.append(
                WeekSlot(
                    week_number=int(week_row["week_number"]),
                    workouts=tuple(
                        ScheduledWorkout(
                            instance_id=row["instance_id"],
                            original_id=row["workout_id"],
                            completed=bool(row["completed"]),
                            completed_date=(
                                parse_iso_date(row["completed_date"], field="completed_date")
                                if row["completed_date"]
                                else None
                            ),
                            completed_notes=row["completed_notes"],
                        )
                        for row in placements
                    ),
                    mileage_goal=week_row["mileage_goal"],
                    actual_mileage=week_row["actual_mileage"],
                )
            )
        start = header["training_start_date"]
        return Schedule(
            id=int(header["id"]),
            name=header["name"],
            training_start_date=parse_iso_date(start, field="training_start_date") if start else None,
            weeks=tuple(weeks),
        )

    def _write_weeks(self, conn: sqlite3.Connection, schedule_id: int, schedule: Schedule) -> None:
        conn.execute("DELETE FROM schedule_weeks WHERE schedule_id = ?", (schedule_id,))
        for week in schedule.weeks:
            cursor = conn.execute(
                """
                INSERT INTO schedule_weeks (schedule_id, week_number, mileage_goal, actual_mileage)
                VALUES (?, ?, ?, ?)
                """,
                (schedule_id, week.week_number, week.mileage_goal, week.actual_mileage),
            )
            week_id = cursor.lastrowid
            conn.executemany(
                """
                INSERT INTO schedule_workouts
                    (week_id, position, instance_id, workout_id, completed, completed_date, completed_notes)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        week_id,
                        position,
                        item.instance_id,
                        item.workout_id,
                        int(item.completed),
                        item.completed_date.isoformat() if item.completed_date else None,
                        item.completed_notes,
                    )
                    for position, item in enumerate(week.workouts)
                ],
            )

    def _permissions(self, conn: sqlite3.Connection, schedule_id: int) -> SchedulePermissions:
        me = self._account_id(conn)
        if me is None:
            return SchedulePermissions()
        owner = conn.execute(
            "SELECT user_id FROM training_schedules WHERE id = ?", (schedule_id,)
        ).fetchone()
        if owner is None:
            return SchedulePermissions()
        if int(owner["user_id"]) == me:
            return SchedulePermissions(is_owner=True, can_edit=True, can_view=True)
        share = conn.execute(
            "SELECT permission_level FROM schedule_shares WHERE schedule_id = ? AND shared_with_user_id = ?",
            (schedule_id, me),
        ).fetchone()
        if share:
            return SchedulePermissions(
                is_owner=False,
                can_edit=share["permission_level"] == PermissionLevel.EDIT.value,
                can_view=True,
            )
        return SchedulePermissions()

    def fetch_schedules(self) -> BackendResult[list[Schedule]]:
        def operation(conn: sqlite3.Connection) -> list[Schedule]:
            rows = conn.execute(
                "SELECT id FROM training_schedules WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (self._my_id(conn),),
            ).fetchall()
            schedules = [self._load_schedule(conn, int(row["id"])) for row in rows]
            return [schedule for schedule in schedules if schedule is not None]

        return self._run("fetch schedules", operation)

    def _stored_schedule(self, conn: sqlite3.Connection, schedule_id: int) -> Schedule:
        schedule = self._load_schedule(conn, schedule_id)
        if schedule is None:
            raise _Refused(f"Schedule {schedule_id} not found")
        return schedule

    def _overwrite_schedule(self, conn: sqlite3.Connection, schedule_id: int, schedule: Schedule) -> Schedule:
        permissions = self._permissions(conn, schedule_id)
        if not permissions.can_view:
            raise _Refused(f"Schedule {schedule_id} not found")
        if not permissions.can_edit:
            raise _Refused("You only have view access to this schedule")
        conn.execute(
            "UPDATE training_schedules SET name = ?, training_start_date = ? WHERE id = ?",
            (
                schedule.name,
                schedule.training_start_date.isoformat() if schedule.training_start_date else None,
                schedule_id,
            ),
        )
        self._write_weeks(conn, schedule_id, schedule)
        return self._stored_schedule(conn, schedule_id)

    def fetch_schedule(self, schedule_id: int) -> BackendResult[Schedule]:
        def operation(conn: sqlite3.Connection) -> Schedule:
            if not self._permissions(conn, schedule_id).can_view:
                raise _Refused(f"Schedule {schedule_id} not found")
            return self._stored_schedule(conn, schedule_id)

        return self._run("fetch schedule", operation)

    def save_schedule(self, schedule: Schedule) -> BackendResult[Schedule]:
        def operation(conn: sqlite3.Connection) -> Schedule:
            cursor = conn.execute(
                "INSERT INTO training_schedules (name, training_start_date, user_id) VALUES (?, ?, ?)",
                (
                    schedule.name,
                    schedule.training_start_date.isoformat() if schedule.training_start_date else None,
                    self._my_id(conn),
                ),
            )
            schedule_id = int(cursor.lastrowid)
            self._write_weeks(conn, schedule_id, schedule)
            return self._stored_schedule(conn, schedule_id)

        return self._run("save schedule", operation)

    def update_schedule(self, schedule_id: int, schedule: Schedule) -> BackendResult[Schedule]:
        """Rewrite the schedule header, weeks and placements in one transaction."""

        def operation(conn: sqlite3.Connection) -> Schedule:
            return self._overwrite_schedule(conn, schedule_id, schedule)

        return self._run("update schedule", operation)

    def delete_schedule(self, schedule_id: int) -> BackendResult[int]:
        def operation(conn: sqlite3.Connection) -> int:
            if not self._permissions(conn, schedule_id).is_owner:
                raise _Refused("Only the owner can delete a schedule")
            conn.execute("DELETE FROM training_schedules WHERE id = ?", (schedule_id,))
            return schedule_id

        return self._run("delete schedule", operation)

    # History ---------------------------------------------------------------------------

    def fetch_history(self) -> BackendResult[list[HistoryEntry]]:
        def operation(conn: sqlite3.Connection) -> list[HistoryEntry]:
            rows = conn.execute(
                "SELECT * FROM workout_history WHERE user_id = ? ORDER BY date DESC, id DESC",
                (self._my_id(conn),),
            ).fetchall()
            return [_history_from_row(row) for row in rows]

        return self._run("fetch history", operation)

    def _insert_history(self, conn: sqlite3.Connection, entry: HistoryEntry) -> HistoryEntry:
        conn.execute(
            """
            INSERT INTO workout_history
                (id, workout_id, date, actual_times, target_times, notes, weather, location, rating, user_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.workout_id,
                entry.date.isoformat(),
                json.dumps(list(entry.actual_times)),
                json.dumps(list(entry.target_times)),
                entry.notes,
                entry.weather,
                entry.location,
                entry.rating,
                self._my_id(conn),
            ),
        )
        return entry

    def append_history(self, entry: HistoryEntry) -> BackendResult[HistoryEntry]:
        def operation(conn: sqlite3.Connection) -> HistoryEntry:
            return self._insert_history(conn, entry)

        return self._run("save workout history", operation)

    def record_completion(
        self, schedule_id: int, schedule: Schedule, entry: HistoryEntry
    ) -> BackendResult[tuple[Schedule, HistoryEntry]]:
        """
        Store a completion in one transaction.

        The history entry is inserted and the schedule, already carrying the
        placement's completed flag, date and notes, is rewritten. A refusal or a
        failed insert rolls back both writes.
        """

        def operation(conn: sqlite3.Connection) -> tuple[Schedule, HistoryEntry]:
            saved = self._overwrite_schedule(conn, schedule_id, schedule)
            return saved, self._insert_history(conn, entry)

        return self._run("save workout history", operation)

    def update_history(self, entry: HistoryEntry) -> BackendResult[HistoryEntry]:
        def operation(conn: sqlite3.Connection) -> HistoryEntry:
            cursor = conn.execute(
                """
                UPDATE workout_history
                SET date = ?, actual_times = ?, target_times = ?, notes = ?, weather = ?,
                    location = ?, rating = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    entry.date.isoformat(),
                    json.dumps(list(entry.actual_times)),
                    json.dumps(list(entry.target_times)),
                    entry.notes,
                    entry.weather,
                    entry.location,
                    entry.rating,
                    entry.id,
                    self._my_id(conn),
                ),
            )
            if cursor.rowcount == 0:
                raise _Refused(f"History entry {entry.id!r} not found")
            return entry

        return self._run("update workout history", operation)

    # Sharing ---------------------------------------------------------------------------

    def share_schedule(
        self, schedule_id: int, email: str, level: PermissionLevel = PermissionLevel.VIEW
    ) -> BackendResult[ScheduleShare]:
        def operation(conn: sqlite3.Connection) -> ScheduleShare:
            if not self._permissions(conn, schedule_id).is_owner:
                raise _Refused("Only the owner can share a schedule")
            target = self._account_id(conn, email)
            if target is None:
                raise _Refused("User not found with that email address")
            me = self._my_id(conn)
            if target == me:
                raise _Refused("You already own this schedule")
            conn.execute(
                """
                INSERT INTO schedule_shares (schedule_id, shared_with_user_id, shared_by_user_id, permission_level)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (schedule_id, shared_with_user_id) DO UPDATE
                SET permission_level = excluded.permission_level
                """,
                (schedule_id, target, me, PermissionLevel(level).value),
            )
            row = conn.execute(
                f"{_SHARE_SELECT} WHERE s.schedule_id = ? AND s.shared_with_user_id = ?",
                (schedule_id, target),
            ).fetchone()
            return _share_from_row(row)

        return self._run("share schedule", operation)

    def fetch_shares(self, schedule_id: int) -> BackendResult[list[ScheduleShare]]:
        def operation(conn: sqlite3.Connection) -> list[ScheduleShare]:
            if not self._permissions(conn, schedule_id).is_owner:
                raise _Refused("Only the owner can see who a schedule is shared with")
            rows = conn.execute(
                f"{_SHARE_SELECT} WHERE s.schedule_id = ? ORDER BY s.id", (schedule_id,)
            ).fetchall()
            return [_share_from_row(row) for row in rows]

        return self._run("fetch shares", operation)

    def remove_share(self, share_id: int) -> BackendResult[int]:
        def operation(conn: sqlite3.Connection) -> int:
            row = conn.execute("SELECT schedule_id FROM schedule_shares WHERE id = ?", (share_id,)).fetchone()
            if row is None:
                raise _Refused(f"Share {share_id} not found")
            if not self._permissions(conn, int(row["schedule_id"])).is_owner:
                raise _Refused("Only the owner can remove a share")
            conn.execute("DELETE FROM schedule_shares WHERE id = ?", (share_id,))
            return share_id

        return self._run("remove share", operation)

    def fetch_shared_schedules(self) -> BackendResult[list[SharedSchedule]]:
        def operation(conn: sqlite3.Connection) -> list[SharedSchedule]:
            rows = conn.execute(
                f"{_SHARE_SELECT} WHERE s.shared_with_user_id = ? ORDER BY s.id", (self._my_id(conn),)
            ).fetchall()
            shared: list[SharedSchedule] = []
            for row in rows:
                schedule = self._load_schedule(conn, int(row["schedule_id"]))
                if schedule is not None:
                    shared.append(SharedSchedule(schedule=schedule, share=_share_from_row(row)))
            return shared

        return self._run("fetch shared schedules", operation)

    def check_permissions(self, schedule_id: int) -> BackendResult[SchedulePermissions]:
        return self._run("check permissions", lambda conn: self._permissions(conn, schedule_id))
