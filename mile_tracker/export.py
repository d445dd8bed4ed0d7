"""Markdown rendering of the training schedule and the workout history log."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from .catalog import Catalog
from .models import HistoryEntry, Schedule
from .reconcile import describe_history, describe_schedule
from .schedule import format_short_date

HISTORY_TITLE = "Workout History"


def schedule_to_markdown(
    schedule: Schedule,
    catalog: Catalog,
    history: Sequence[HistoryEntry],
    *,
    title: str,
    day_labels: Sequence[str],
    generated_on: Optional[date] = None,
) -> str:
    """
    Render the schedule as a markdown document.

    Only weeks holding at least one workout or a mileage figure get a heading.
    Each workout is labelled with its inferred training day and, when history
    exists, its most recent logged performance.
    """
    generated = generated_on or date.today()
    lines: list[str] = [f"# {title}", "", f"Generated on {format_short_date(generated)}", ""]

    for week in describe_schedule(schedule, catalog, history, day_labels):
        if not week.has_content:
            continue
        lines.extend([f"## {week.heading}", ""])
        if week.mileage_goal:
            lines.append(f"**Mileage goal:** {week.mileage_goal}")
        if week.actual_mileage:
            lines.append(f"**Actual mileage:** {week.actual_mileage}")
        if week.mileage_goal or week.actual_mileage:
            lines.append("")

        for view in week.instances:
            heading = f"### {view.day}: {view.nickname}"
            if view.name:
                heading += f" ({view.name})"
            lines.append(heading)
            if view.workout is not None:
                lines.extend([f"**Description:** {view.workout.description}", ""])
                lines.extend([f"**Rx:** {view.workout.rx}", ""])
            if view.instance.completed:
                completed = view.instance.completed_date.isoformat() if view.instance.completed_date else "yes"
                if view.instance.completed_notes:
                    completed += f" - {view.instance.completed_notes}"
                lines.extend([f"**Completed:** {completed}", ""])
            if view.last_performance is not None:
                lines.extend([f"**Recent Performance:** {view.last_performance.summary}", ""])
            lines.extend(["---", ""])

    return "\n".join(lines)


def history_to_markdown(
    entries: Sequence[HistoryEntry],
    catalog: Catalog,
    *,
    generated_on: Optional[date] = None,
) -> str:
    generated = generated_on or date.today()
    lines: list[str] = [f"# {HISTORY_TITLE}", "", f"Generated on {format_short_date(generated)}", ""]
    for row in describe_history(entries, catalog):
        heading = f"## {row['date']}: {row['nickname']}"
        if row["name"]:
            heading += f" ({row['name']})"
        lines.extend([heading, ""])
        if row["rating"] is not None:
            lines.extend([f"**Rating:** {row['rating']}/10", ""])
        if row["actual_times"]:
            lines.extend([f"**Times:** {', '.join(row['actual_times'])}", ""])
        if row["target_times"]:
            lines.extend([f"**Targets:** {', '.join(row['target_times'])}", ""])
        if row["notes"]:
            lines.extend([f"**Notes:** {row['notes']}", ""])
        details = [
            f"Weather: {row['weather']}" if row["weather"] else "",
            f"Location: {row['location']}" if row["location"] else "",
        ]
        details = [item for item in details if item]
        if details:
            lines.extend([" | ".join(details), ""])
        lines.extend(["---", ""])
    return "\n".join(lines)


def write_markdown(path: Path | str, document: str) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(document, encoding="utf-8")
    return target
