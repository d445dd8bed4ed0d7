from __future__ import annotations

from dataclasses import replace
from datetime import date

from mile_tracker.catalog import Catalog
from mile_tracker.export import history_to_markdown, schedule_to_markdown, write_markdown
from mile_tracker.models import HistoryEntry, Schedule, ScheduledWorkout, WeekSlot
from mile_tracker.schedule import mark_completed, place_workout, update_mileage

CATALOG = Catalog.seeded()
LABELS = ("Tuesday", "Friday")
TITLE = "Gruber's Mile Training Schedule"


def _render(schedule: Schedule, history=()) -> str:
    return schedule_to_markdown(
        schedule, CATALOG, list(history), title=TITLE, day_labels=LABELS, generated_on=date(2025, 1, 1)
    )


def test_only_weeks_with_content_are_exported() -> None:
    schedule = place_workout(Schedule.empty(12), 4, CATALOG.get("p2"))
    document = _render(schedule)

    headings = [line for line in document.splitlines() if line.startswith("## Week")]
    assert headings == ["## Week 5"]
    assert document.startswith(f"# {TITLE}\n")
    assert "Generated on Jan 1, 2025" in document
    assert "### Tuesday: The Pyramid 600 (200-400-600-400-200 Pyramid Sets)" in document
    assert "**Description:** 2 x (200-400-600-400-200)" in document
    assert "**Rx:** 200s @31-33s" in document


def test_mileage_alone_makes_a_week_exportable() -> None:
    schedule = update_mileage(Schedule.empty(12), 7, "actual_mileage", "42")
    document = _render(schedule)
    assert "## Week 8" in document
    assert "**Actual mileage:** 42" in document
    assert "**Mileage goal:**" not in document


def test_week_headings_carry_start_dates() -> None:
    schedule = replace(Schedule.empty(12), training_start_date=date(2025, 1, 6))
    schedule = place_workout(schedule, 4, CATALOG.get("s1"))
    assert "## Week 5: Feb 3, 2025" in _render(schedule)


def test_second_and_third_workouts_get_friday_then_numbered_days() -> None:
    schedule = Schedule.empty(2)
    for workout_id in ("p1", "s1", "s2"):
        schedule = place_workout(schedule, 0, CATALOG.get(workout_id))
    document = _render(schedule)
    assert "### Tuesday: The Pyramid 1000" in document
    assert "### Friday: " in document
    assert "### Day 3: " in document
    assert document.count("\n---\n") == 3


def test_completion_and_recent_performance_lines() -> None:
    schedule = place_workout(Schedule.empty(12), 2, CATALOG.get("p1"))
    schedule = mark_completed(schedule, 2, 0, completed_date=date(2025, 1, 10), notes="windy")
    history = [
        HistoryEntry(id="h1", workout_id="p1", date=date(2024, 12, 1), rating=6),
        HistoryEntry(id="h2", workout_id="p1", date=date(2025, 1, 10), rating=8),
    ]
    document = _render(schedule, history)
    assert "**Completed:** 2025-01-10 - windy" in document
    assert "**Recent Performance:** Last run 2025-01-10 - Rating: 8/10" in document


def test_unknown_workouts_render_with_placeholder() -> None:
    orphan = ScheduledWorkout(instance_id="gone-1234", original_id="gone")
    schedule = Schedule(weeks=(WeekSlot(week_number=1, workouts=(orphan,)),))
    document = _render(schedule)
    assert "### Tuesday: Unknown Workout" in document
    assert "**Rx:**" not in document


def test_history_markdown_lists_newest_first(tmp_path) -> None:
    entries = [
        HistoryEntry(id="h1", workout_id="p1", date=date(2025, 1, 3), rating=6, actual_times=("70", "71")),
        HistoryEntry(id="h2", workout_id="s1", date=date(2025, 1, 9), notes="rainy", weather="wet", location="track"),
    ]
    document = history_to_markdown(entries, CATALOG, generated_on=date(2025, 1, 10))
    first = document.index("## 2025-01-09")
    second = document.index("## 2025-01-03: The Pyramid 1000")
    assert first < second
    assert "**Times:** 70, 71" in document
    assert "Weather: wet | Location: track" in document

    target = write_markdown(tmp_path / "out" / "history.md", document)
    assert target.read_text(encoding="utf-8") == document
