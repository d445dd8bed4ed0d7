from __future__ import annotations

from datetime import date

from typer.testing import CliRunner

from mile_tracker.backend import SQLiteBackend
from mile_tracker.cli import app


def _env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("MILE_TRACKER_DB_FILE", str(tmp_path / "mile.db"))
    monkeypatch.setenv("MILE_TRACKER_ACCOUNT", "athlete@example.com")


def test_cli_smoke(tmp_path, monkeypatch):
    runner = CliRunner()
    _env(monkeypatch, tmp_path)

    result = runner.invoke(app, ["schedule", "add", "3", "p1", "--schedule", "Smoke"])
    assert result.exit_code == 0, result.output
    assert "Added The Pyramid 1000 to week 3" in result.output

    result = runner.invoke(app, ["schedule", "duplicate", "3", "1", "--schedule", "Smoke"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        app,
        [
            "schedule",
            "complete",
            "3",
            "1",
            "--date",
            "2025-01-10",
            "--rating",
            "8",
            "--times",
            "69.5, 74.1",
            "--schedule",
            "Smoke",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Completed The Pyramid 1000 on 2025-01-10." in result.output

    result = runner.invoke(app, ["schedule", "list"])
    assert result.exit_code == 0, result.output
    assert "Smoke (2 workouts, no start date)" in result.output

    result = runner.invoke(app, ["workout", "show", "p1"])
    assert result.exit_code == 0, result.output
    assert "Logged 1 time(s)." in result.output
    assert "2025-01-10 - Rating: 8/10" in result.output

    export_path = tmp_path / "plan.md"
    result = runner.invoke(app, ["export", "--output", str(export_path), "--schedule", "Smoke"])
    assert result.exit_code == 0, result.output
    document = export_path.read_text(encoding="utf-8")
    assert [line for line in document.splitlines() if line.startswith("## Week")] == ["## Week 3"]
    assert "**Recent Performance:** Last run 2025-01-10 - Rating: 8/10" in document


def test_cli_rejects_bad_input(tmp_path, monkeypatch):
    runner = CliRunner()
    _env(monkeypatch, tmp_path)

    result = runner.invoke(app, ["schedule", "add", "99", "p1"])
    assert result.exit_code == 2

    result = runner.invoke(app, ["schedule", "add", "1", "nope"])
    assert result.exit_code == 2

    result = runner.invoke(app, ["history", "add", "p1", "--date", "not-a-date"])
    assert result.exit_code == 2

    result = runner.invoke(app, ["workout", "show", "zz"])
    assert result.exit_code == 1


def test_cli_history_and_config(tmp_path, monkeypatch):
    runner = CliRunner()
    _env(monkeypatch, tmp_path)

    result = runner.invoke(app, ["history", "add", "s2", "--date", "2025-02-01", "--rating", "6"])
    assert result.exit_code == 0, result.output
    assert "Logged" in result.output

    result = runner.invoke(app, ["history", "list", "--workout", "s2"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0, result.output
    assert "Account: athlete@example.com" in result.output
    assert str(tmp_path / "mile.db") in result.output


def test_cli_workout_delete_refused_when_scheduled(tmp_path, monkeypatch):
    runner = CliRunner()
    _env(monkeypatch, tmp_path)

    assert runner.invoke(app, ["schedule", "add", "1", "p7"]).exit_code == 0
    result = runner.invoke(app, ["workout", "delete", "p7"])
    assert result.exit_code == 1
    assert "used in existing training schedules" in result.output


def test_cli_complete_stores_flag_with_history(tmp_path, monkeypatch):
    runner = CliRunner()
    _env(monkeypatch, tmp_path)

    assert runner.invoke(app, ["schedule", "add", "2", "s5", "--schedule", "Base"]).exit_code == 0
    result = runner.invoke(
        app, ["schedule", "complete", "2", "1", "--date", "2025-01-14", "--notes", "humid", "--schedule", "Base"]
    )
    assert result.exit_code == 0, result.output

    backend = SQLiteBackend(tmp_path / "mile.db", account="athlete@example.com")
    (saved,) = backend.fetch_schedules().data
    stored = saved.weeks[1].workouts[0]
    assert (stored.completed, stored.completed_date, stored.completed_notes) == (True, date(2025, 1, 14), "humid")
    assert [entry.notes for entry in backend.fetch_history().data] == ["humid"]
