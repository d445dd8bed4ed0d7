from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .backend import SQLiteBackend, current_account, database_file
from .config import as_dict as config_as_dict, get_config
from .export import write_markdown
from .history import build_completion
from .models import PermissionLevel, ValidationError
from .reconcile import describe_catalog, describe_history, workout_detail
from .state import PersistenceError, TrainingState

LOGGER = logging.getLogger(__name__)

DEFAULT_SCHEDULE_NAME = "Mile Training"

app = typer.Typer(help="Plan, log and export a mile training block.")
schedule_app = typer.Typer(help="Edit the weekly training schedule.")
history_app = typer.Typer(help="Log and review completed workouts.")
workout_app = typer.Typer(help="Inspect and maintain the workout library.")
share_app = typer.Typer(help="Share schedules with other accounts.")

console = Console()

SCHEDULE_OPTION = typer.Option(
    DEFAULT_SCHEDULE_NAME,
    "--schedule",
    "-s",
    help="Name of the saved schedule to work on (created on first save).",
)


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _state() -> TrainingState:
    try:
        return TrainingState.load(SQLiteBackend())
    except PersistenceError as exc:
        _fail(str(exc))


def _open(state: TrainingState, name: str) -> TrainingState:
    """Point `state` at the saved schedule called `name`, or a fresh one under that name."""
    try:
        existing = state.find_schedule(name)
        if existing is not None and existing.id is not None:
            state.load_schedule(existing.id)
        else:
            state.new_schedule(name)
    except PersistenceError as exc:
        _fail(str(exc))
    return state


def _week_index(state: TrainingState, week: int) -> int:
    if not 1 <= week <= len(state.schedule.weeks):
        raise typer.BadParameter(f"Week must be between 1 and {len(state.schedule.weeks)}.", param_hint="WEEK")
    return week - 1


def _position_index(state: TrainingState, week_index: int, position: int) -> int:
    count = len(state.schedule.weeks[week_index].workouts)
    if not 1 <= position <= count:
        raise typer.BadParameter(
            f"Week {week_index + 1} has {count} workout(s); position {position} does not exist.",
            param_hint="POSITION",
        )
    return position - 1


def _save(state: TrainingState) -> None:
    try:
        state.save_schedule()
    except PersistenceError as exc:
        _fail(str(exc))
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _print_week_table(state: TrainingState, *, show_empty: bool) -> None:
    table = Table(title=state.schedule.name or "Unsaved schedule")
    table.add_column("Week", justify="right")
    table.add_column("Starts")
    table.add_column("#", justify="right")
    table.add_column("Day")
    table.add_column("Workout")
    table.add_column("Done")
    table.add_column("Last run")
    table.add_column("Mileage")
    for week in state.weeks():
        if not week.has_content and not show_empty:
            continue
        start = week.to_dict()["start_label"]
        mileage = " / ".join(filter(None, [week.mileage_goal, week.actual_mileage]))
        if not week.instances:
            table.add_row(str(week.week_number), start, "", "", "", "", "", mileage)
            continue
        for view in week.instances:
            done = view.instance.completed_date.isoformat() if view.instance.completed_date else (
                "yes" if view.instance.completed else ""
            )
            table.add_row(
                str(week.week_number),
                start if view.index == 0 else "",
                str(view.index + 1),
                view.day,
                view.nickname,
                done,
                view.last_performance.summary if view.last_performance else "",
                mileage if view.index == 0 else "",
            )
    console.print(table)


@app.command("catalog")
def catalog_show(
    category: Optional[str] = typer.Option(
        None,
        "--category",
        "-c",
        help="Only list workouts in this category key (e.g. 'primary').",
    ),
) -> None:
    """
    List the workout library grouped by category.
    """
    state = _state()
    for group in describe_catalog(state.catalog, state.history):
        if category and group["key"] != category:
            continue
        table = Table(title=f"{group['name']} ({group['key']})")
        table.add_column("ID")
        table.add_column("Nickname")
        table.add_column("Name")
        table.add_column("Last run")
        for workout in group["workouts"]:
            last = workout["last_performance"]
            table.add_row(
                workout["id"],
                workout["nickname"],
                workout["name"],
                f"{last['date']} ({last['rating']}/10)" if last else "",
            )
        console.print(table)


@schedule_app.command("show")
def schedule_show(
    schedule: str = SCHEDULE_OPTION,
    all_weeks: bool = typer.Option(False, "--all", help="Include weeks with nothing planned."),
) -> None:
    """Print the schedule week by week."""
    state = _open(_state(), schedule)
    _print_week_table(state, show_empty=all_weeks)


@schedule_app.command("list")
def schedule_list() -> None:
    """List schedules owned by the current account."""
    state = _state()
    try:
        schedules = state.list_schedules()
    except PersistenceError as exc:
        _fail(str(exc))
    if not schedules:
        typer.echo("No saved schedules.")
        raise typer.Exit(code=0)
    for item in schedules:
        planned = sum(len(week.workouts) for week in item.weeks)
        start = item.training_start_date.isoformat() if item.training_start_date else "no start date"
        typer.echo(f"#{item.id} {item.name} ({planned} workouts, {start})")


@schedule_app.command("add")
def schedule_add(
    week: int = typer.Argument(..., help="Week number (1-based)."),
    workout_id: str = typer.Argument(..., help="Library workout id, e.g. 'p1'."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """Place a library workout into a week."""
    state = _open(_state(), schedule)
    index = _week_index(state, week)
    try:
        placed = state.place_workout(index, workout_id)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="WORKOUT_ID") from exc
    _save(state)
    if placed is not None:
        typer.echo(f"Added {state.catalog.display_name(workout_id)} to week {week} ({placed.instance_id}).")


@schedule_app.command("remove")
def schedule_remove(
    week: int = typer.Argument(..., help="Week number (1-based)."),
    position: int = typer.Argument(..., help="Position within the week (1-based)."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """Remove a placed workout from a week."""
    state = _open(_state(), schedule)
    week_index = _week_index(state, week)
    index = _position_index(state, week_index, position)
    state.remove_workout(week_index, index)
    _save(state)
    typer.echo(f"Removed workout {position} from week {week}.")


@schedule_app.command("duplicate")
def schedule_duplicate(
    week: int = typer.Argument(..., help="Week number (1-based)."),
    position: int = typer.Argument(..., help="Position within the week (1-based)."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """Copy a placed workout directly after itself."""
    state = _open(_state(), schedule)
    week_index = _week_index(state, week)
    index = _position_index(state, week_index, position)
    copy = state.duplicate_workout(week_index, index)
    _save(state)
    if copy is not None:
        typer.echo(f"Duplicated {state.catalog.display_name(copy.workout_id)} in week {week}.")


@schedule_app.command("mileage")
def schedule_mileage(
    week: int = typer.Argument(..., help="Week number (1-based)."),
    goal: Optional[str] = typer.Option(None, "--goal", "-g", help="Mileage goal (free text, blank clears)."),
    actual: Optional[str] = typer.Option(None, "--actual", "-a", help="Actual mileage (free text, blank clears)."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """Record the mileage goal and/or actual mileage for a week."""
    if goal is None and actual is None:
        raise typer.BadParameter("Provide --goal and/or --actual.")
    state = _open(_state(), schedule)
    index = _week_index(state, week)
    if goal is not None:
        state.update_mileage(index, "mileage_goal", goal)
    if actual is not None:
        state.update_mileage(index, "actual_mileage", actual)
    _save(state)
    typer.echo(f"Updated mileage for week {week}.")


@schedule_app.command("start-date")
def schedule_start_date(
    start: str = typer.Argument(..., help="Training start date in YYYY-MM-DD format ('' clears it)."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """Set the date week 1 begins on."""
    state = _open(_state(), schedule)
    try:
        state.set_training_start_date(start)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="START") from exc
    _save(state)
    current = state.schedule.training_start_date
    typer.echo(f"Training starts {current.isoformat()}." if current else "Training start date cleared.")


@schedule_app.command("complete")
def schedule_complete(
    week: int = typer.Argument(..., help="Week number (1-based)."),
    position: int = typer.Argument(..., help="Position within the week (1-based)."),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Completion date (defaults to today)."),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="How it went on a 1-10 scale."),
    times: Optional[str] = typer.Option(None, "--times", "-t", help="Comma-separated split times."),
    targets: Optional[str] = typer.Option(None, "--targets", help="Comma-separated target times."),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form notes."),
    weather: Optional[str] = typer.Option(None, "--weather", help="Weather conditions."),
    location: Optional[str] = typer.Option(None, "--location", help="Where the workout was run."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """
    Mark a placed workout completed and log it in the history.
    """
    state = _open(_state(), schedule)
    week_index = _week_index(state, week)
    index = _position_index(state, week_index, position)
    try:
        completion = build_completion(
            date_text=date,
            notes=notes,
            rating=rating,
            actual_times=times,
            target_times=targets,
            weather=weather,
            location=location,
        )
        entry = state.complete_instance(week_index, index, completion)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Completed {state.catalog.display_name(entry.workout_id)} on {entry.date.isoformat()}.")


@schedule_app.command("delete")
def schedule_delete(
    schedule: str = SCHEDULE_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete a saved schedule."""
    state = _state()
    try:
        existing = state.find_schedule(schedule)
        if existing is None or existing.id is None:
            _fail(f"No saved schedule named {schedule!r}.")
        if not yes:
            typer.confirm(f"Delete schedule {schedule!r}?", abort=True)
        state.delete_schedule(existing.id)
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Deleted schedule {schedule!r}.")


@history_app.command("add")
def history_add(
    workout_id: str = typer.Argument(..., help="Library workout id, e.g. 'p1'."),
    date: str = typer.Option(..., "--date", "-d", help="Workout date in YYYY-MM-DD format."),
    rating: int = typer.Option(5, "--rating", "-r", help="How it went on a 1-10 scale."),
    times: Optional[str] = typer.Option(None, "--times", "-t", help="Comma-separated split times."),
    targets: Optional[str] = typer.Option(None, "--targets", help="Comma-separated target times."),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form notes."),
    weather: Optional[str] = typer.Option(None, "--weather", help="Weather conditions."),
    location: Optional[str] = typer.Option(None, "--location", help="Where the workout was run."),
) -> None:
    """Log a workout that was not scheduled."""
    state = _state()
    try:
        entry = state.add_history_entry(
            workout_id=workout_id,
            date_text=date,
            actual_times=times,
            target_times=targets,
            notes=notes,
            weather=weather,
            location=location,
            rating=rating,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Logged {state.catalog.display_name(entry.workout_id)} on {entry.date.isoformat()} ({entry.id}).")


@history_app.command("list")
def history_list(
    workout_id: Optional[str] = typer.Option(None, "--workout", "-w", help="Only show entries for this workout."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most this many entries."),
) -> None:
    """Show the history log, newest first."""
    state = _state()
    entries = state.history_for(workout_id) if workout_id else state.history
    rows = describe_history(entries, state.catalog)
    if limit is not None:
        rows = rows[:limit]
    if not rows:
        typer.echo("No history entries.")
        raise typer.Exit(code=0)
    table = Table(title="Workout History")
    for column in ("ID", "Date", "Workout", "Rating", "Times", "Notes"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row["id"],
            row["date"],
            row["nickname"],
            f"{row['rating']}/10" if row["rating"] is not None else "",
            ", ".join(row["actual_times"]),
            row["notes"] or "",
        )
    console.print(table)


@history_app.command("edit")
def history_edit(
    entry_id: str = typer.Argument(..., help="History entry id."),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="New date in YYYY-MM-DD format."),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="New rating on a 1-10 scale."),
    times: Optional[str] = typer.Option(None, "--times", "-t", help="Replacement split times."),
    targets: Optional[str] = typer.Option(None, "--targets", help="Replacement target times."),
    notes: Optional[str] = typer.Option(None, "--notes", help="Replacement notes."),
    weather: Optional[str] = typer.Option(None, "--weather", help="Replacement weather."),
    location: Optional[str] = typer.Option(None, "--location", help="Replacement location."),
) -> None:
    """Correct a logged history entry."""
    patch = {
        key: value
        for key, value in {
            "date": date,
            "rating": rating,
            "actual_times": times,
            "target_times": targets,
            "notes": notes,
            "weather": weather,
            "location": location,
        }.items()
        if value is not None
    }
    if not patch:
        raise typer.BadParameter("Nothing to update.")
    state = _state()
    try:
        entry = state.edit_history_entry(entry_id, patch)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Updated history entry {entry.id}.")


@workout_app.command("show")
def workout_show(workout_id: str = typer.Argument(..., help="Library workout id.")) -> None:
    """Show a workout with its most recent history."""
    state = _state()
    detail = workout_detail(workout_id, state.catalog, state.history)
    if detail is None:
        _fail(f"Unknown workout {workout_id!r}.")
    typer.echo(f"{detail['nickname']} ({detail['name']}) [{detail['id']}, v{detail['version']}]")
    typer.echo(f"Category: {detail['category']}")
    typer.echo(f"Description: {detail['description']}")
    typer.echo(f"Rx: {detail['rx']}")
    typer.echo(f"Logged {detail['history_count']} time(s).")
    for entry in detail["recent_history"]:
        rating = f"{entry['rating']}/10" if entry["rating"] is not None else "n/a"
        typer.echo(f" • {entry['date']} - Rating: {rating}")


@workout_app.command("add")
def workout_add(
    workout_id: str = typer.Option(..., "--id", help="Unique id for the new workout."),
    category: str = typer.Option(..., "--category", "-c", help="Category key (e.g. 'primary', 'secondary')."),
    name: str = typer.Option(..., "--name", help="Full workout name."),
    nickname: str = typer.Option(..., "--nickname", help="Short display name."),
    description: str = typer.Option("", "--description", help="What the workout is."),
    rx: str = typer.Option("", "--rx", help="Prescription (reps, distances, rest)."),
) -> None:
    """Add a custom workout to the library."""
    state = _state()
    try:
        created = state.create_workout(
            {
                "id": workout_id,
                "category": category,
                "name": name,
                "nickname": nickname,
                "description": description,
                "rx": rx,
            }
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Created workout {created.id} ({created.nickname}).")


@workout_app.command("edit")
def workout_edit(
    workout_id: str = typer.Argument(..., help="Library workout id."),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="New category key."),
    name: Optional[str] = typer.Option(None, "--name", help="New full name."),
    nickname: Optional[str] = typer.Option(None, "--nickname", help="New short name."),
    description: Optional[str] = typer.Option(None, "--description", help="New description."),
    rx: Optional[str] = typer.Option(None, "--rx", help="New prescription."),
    reason: Optional[str] = typer.Option(None, "--reason", help="Why the workout changed (kept with the version)."),
) -> None:
    """Edit a workout; the previous definition is kept as a version."""
    updates = {
        key: value
        for key, value in {
            "category": category,
            "name": name,
            "nickname": nickname,
            "description": description,
            "rx": rx,
        }.items()
        if value is not None
    }
    state = _state()
    try:
        updated = state.edit_workout(workout_id, updates, edit_reason=reason)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Updated {updated.id} to version {updated.version}.")


@workout_app.command("delete")
def workout_delete(workout_id: str = typer.Argument(..., help="Library workout id.")) -> None:
    """Remove a workout that no schedule uses."""
    state = _state()
    try:
        state.delete_workout(workout_id)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Deleted workout {workout_id}.")


@workout_app.command("versions")
def workout_versions(workout_id: str = typer.Argument(..., help="Library workout id.")) -> None:
    """List earlier versions of a workout."""
    state = _state()
    try:
        versions = state.workout_versions(workout_id)
    except PersistenceError as exc:
        _fail(str(exc))
    if not versions:
        typer.echo(f"No earlier versions of {workout_id}.")
        raise typer.Exit(code=0)
    for version in versions:
        reason = f" - {version.edit_reason}" if version.edit_reason else ""
        typer.echo(f"v{version.version_number}: {version.nickname} ({version.name}){reason}")


@share_app.command("add")
def share_add(
    email: str = typer.Argument(..., help="Email of the account to share with."),
    level: PermissionLevel = typer.Option(PermissionLevel.VIEW, "--level", "-l", help="Access level."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """Share a saved schedule with another account."""
    state = _open(_state(), schedule)
    try:
        share = state.share_schedule(email, level)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Shared {schedule!r} with {share.shared_with} ({share.permission_level.value}).")


@share_app.command("list")
def share_list(schedule: str = SCHEDULE_OPTION) -> None:
    """List who a schedule is shared with."""
    state = _open(_state(), schedule)
    try:
        shares = state.list_shares()
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except PersistenceError as exc:
        _fail(str(exc))
    if not shares:
        typer.echo("Not shared with anyone.")
        raise typer.Exit(code=0)
    for share in shares:
        typer.echo(f"#{share.id} {share.shared_with} ({share.permission_level.value})")


@share_app.command("remove")
def share_remove(share_id: int = typer.Argument(..., help="Share id from 'share list'.")) -> None:
    """Revoke a share."""
    state = _state()
    try:
        state.remove_share(share_id)
    except PersistenceError as exc:
        _fail(str(exc))
    typer.echo(f"Removed share #{share_id}.")


@share_app.command("received")
def share_received() -> None:
    """List schedules other accounts shared with you."""
    state = _state()
    try:
        shared = state.shared_with_me()
    except PersistenceError as exc:
        _fail(str(exc))
    if not shared:
        typer.echo("Nothing has been shared with you.")
        raise typer.Exit(code=0)
    for item in shared:
        typer.echo(
            f"#{item.schedule.id} {item.schedule.name} from {item.share.shared_by} "
            f"({item.share.permission_level.value})"
        )


@app.command("export")
def export_markdown(
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Destination file (defaults to the configured export filename in the current directory).",
    ),
    history: bool = typer.Option(False, "--history", help="Export the history log instead of the schedule."),
    schedule: str = SCHEDULE_OPTION,
) -> None:
    """
    Write the schedule (or the history log) as a markdown document.
    """
    state = _state()
    if history:
        document = state.history_markdown()
        destination = output or Path("workout-history.md")
    else:
        _open(state, schedule)
        document = state.schedule_markdown()
        destination = output or Path(state.config.export_filename)
    try:
        written = write_markdown(destination, document)
    except OSError as exc:
        _fail(f"Could not write {destination}: {exc}")
    typer.echo(f"Wrote {written}")


@app.command("config")
def config_show() -> None:
    """
    Show the effective configuration and where data is stored.
    """
    config = config_as_dict()
    typer.echo(f"Config source: {config.get('source')}")
    typer.echo(f"Weeks: {config.get('week_count')}")
    typer.echo("Day labels: " + ", ".join(config.get("day_labels", [])))
    typer.echo(f"Completion policy: {config.get('completion_policy')}")
    typer.echo(f"Export file: {config.get('export_filename')}")
    typer.echo(f"Database: {database_file()}")
    typer.echo(f"Account: {current_account()}")
    LOGGER.debug("Effective config: %s", get_config())


app.add_typer(schedule_app, name="schedule", help="Edit the weekly training schedule.")
app.add_typer(history_app, name="history", help="Log and review completed workouts.")
app.add_typer(workout_app, name="workout", help="Inspect and maintain the workout library.")
app.add_typer(share_app, name="share", help="Share schedules with other accounts.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
