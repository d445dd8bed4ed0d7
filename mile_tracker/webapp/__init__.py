from __future__ import annotations

import logging
import os
from typing import Any

from flask import Flask, Response, current_app, jsonify, request

from ..backend import SQLiteBackend
from ..env import get_env
from ..history import build_completion
from ..models import ValidationError
from ..reconcile import describe_catalog, describe_history, workout_detail
from ..schedule import TransferPayload
from ..state import PersistenceError, TrainingState

LOGGER = logging.getLogger(__name__)

STATE_KEY = "mile_tracker.state"


def create_app(state: TrainingState | None = None) -> Flask:
    """
    Build the JSON API around one `TrainingState`.

    Tests pass their own state; otherwise one is loaded from the SQLite backend
    configured through the ``MILE_TRACKER_`` environment variables.
    """
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    app = Flask(__name__)
    env_secret = get_env("SECRET") or os.environ.get("SECRET_KEY")
    if not env_secret and os.environ.get("FLASK_ENV") == "production":
        raise RuntimeError("SECRET_KEY/MILE_TRACKER_SECRET must be set in production.")
    app.secret_key = env_secret or "dev-secret"
    app.extensions[STATE_KEY] = state or TrainingState.load(SQLiteBackend())

    register_error_handlers(app)
    register_api(app)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    return app


def _state() -> TrainingState:
    return current_app.extensions[STATE_KEY]


def _payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _schedule_response(state: TrainingState, **extra: Any):
    body = {
        "schedule": {
            "id": state.schedule.id,
            "name": state.schedule.name,
            "training_start_date": (
                state.schedule.training_start_date.isoformat() if state.schedule.training_start_date else None
            ),
            "weeks": [week.to_dict() for week in state.weeks()],
        },
        "permissions": state.permissions.to_dict(),
    }
    body.update(extra)
    return jsonify(body)


def _week_index(state: TrainingState, week_number: int) -> int | None:
    index = week_number - 1
    return index if 0 <= index < len(state.schedule.weeks) else None


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def validation_failed(exc: ValidationError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(PersistenceError)
    def persistence_failed(exc: PersistenceError):
        LOGGER.warning("Request failed while trying to %s: %s", exc.action, exc.detail)
        return jsonify({"error": str(exc), "action": exc.action}), 502


def register_api(app: Flask) -> None:
    # Catalog and workouts ------------------------------------------------------------

    @app.get("/api/catalog")
    def api_catalog():
        state = _state()
        return jsonify({"categories": describe_catalog(state.catalog, state.history)})

    @app.get("/api/workouts/<workout_id>")
    def api_workout(workout_id: str):
        state = _state()
        detail = workout_detail(workout_id, state.catalog, state.history)
        if detail is None:
            return jsonify({"error": "Workout not found"}), 404
        return jsonify({"workout": detail})

    @app.post("/api/workouts")
    def api_create_workout():
        created = _state().create_workout(_payload())
        return jsonify({"workout": created.to_dict()}), 201

    @app.put("/api/workouts/<workout_id>")
    def api_edit_workout(workout_id: str):
        payload = _payload()
        edit_reason = payload.pop("edit_reason", None)
        updated = _state().edit_workout(workout_id, payload, edit_reason=edit_reason)
        return jsonify({"workout": updated.to_dict()})

    @app.delete("/api/workouts/<workout_id>")
    def api_delete_workout(workout_id: str):
        _state().delete_workout(workout_id)
        return jsonify({"status": "ok"})

    @app.get("/api/workouts/<workout_id>/versions")
    def api_workout_versions(workout_id: str):
        versions = _state().workout_versions(workout_id)
        return jsonify({"versions": [version.to_dict() for version in versions]})

    # Current schedule ----------------------------------------------------------------

    @app.get("/api/schedule")
    def api_schedule():
        return _schedule_response(_state())

    @app.post("/api/schedule/new")
    def api_new_schedule():
        state = _state()
        state.new_schedule(str(_payload().get("name") or ""))
        return _schedule_response(state)

    @app.put("/api/schedule/name")
    def api_rename_schedule():
        state = _state()
        state.rename_schedule(_payload().get("name"))
        return _schedule_response(state)

    @app.put("/api/schedule/start-date")
    def api_start_date():
        state = _state()
        state.set_training_start_date(_payload().get("training_start_date"))
        return _schedule_response(state)

    @app.post("/api/schedule/weeks/<int:week_number>/workouts")
    def api_place_workout(week_number: int):
        state = _state()
        transfer = TransferPayload.from_mapping(_payload())
        index = _week_index(state, week_number)
        if index is None:
            return jsonify({"error": "Week not found"}), 404
        placed = state.place_workout(index, transfer)
        return _schedule_response(state, placed=placed.to_dict() if placed else None), 201

    @app.delete("/api/schedule/weeks/<int:week_number>/workouts/<int:position>")
    def api_remove_workout(week_number: int, position: int):
        state = _state()
        index = _week_index(state, week_number)
        if index is None or state.instance_view(index, position) is None:
            return jsonify({"error": "Workout not found"}), 404
        state.remove_workout(index, position)
        return _schedule_response(state)

    @app.post("/api/schedule/weeks/<int:week_number>/workouts/<int:position>/duplicate")
    def api_duplicate_workout(week_number: int, position: int):
        state = _state()
        index = _week_index(state, week_number)
        if index is None or state.instance_view(index, position) is None:
            return jsonify({"error": "Workout not found"}), 404
        copy = state.duplicate_workout(index, position)
        return _schedule_response(state, placed=copy.to_dict() if copy else None), 201

    @app.post("/api/schedule/weeks/<int:week_number>/workouts/<int:position>/complete")
    def api_complete_workout(week_number: int, position: int):
        state = _state()
        index = _week_index(state, week_number)
        if index is None or state.instance_view(index, position) is None:
            return jsonify({"error": "Workout not found"}), 404
        payload = _payload()
        completion = build_completion(
            date_text=payload.get("date"),
            notes=payload.get("notes"),
            rating=payload.get("rating"),
            actual_times=payload.get("actual_times"),
            target_times=payload.get("target_times"),
            weather=payload.get("weather"),
            location=payload.get("location"),
        )
        entry = state.complete_instance(index, position, completion)
        return _schedule_response(state, history_entry=entry.to_dict())

    @app.put("/api/schedule/weeks/<int:week_number>/mileage")
    def api_update_mileage(week_number: int):
        state = _state()
        index = _week_index(state, week_number)
        if index is None:
            return jsonify({"error": "Week not found"}), 404
        payload = _payload()
        if "field" in payload:
            state.update_mileage(index, str(payload["field"]), payload.get("value"))
        else:
            fields = [key for key in ("mileage_goal", "actual_mileage") if key in payload]
            if not fields:
                return jsonify({"error": "mileage_goal or actual_mileage is required"}), 400
            for key in fields:
                state.update_mileage(index, key, payload[key])
        return _schedule_response(state)

    @app.get("/api/schedule/permissions")
    def api_permissions():
        return jsonify(_state().permissions.to_dict())

    # Saved schedules -----------------------------------------------------------------

    @app.get("/api/schedules")
    def api_schedules():
        schedules = _state().list_schedules()
        return jsonify({"schedules": [item.to_dict() for item in schedules]})

    @app.post("/api/schedules")
    def api_save_schedule():
        state = _state()
        name = _payload().get("name")
        if name:
            state.rename_schedule(name)
        state.save_schedule()
        return _schedule_response(state), 201

    @app.post("/api/schedules/<int:schedule_id>/load")
    def api_load_schedule(schedule_id: int):
        state = _state()
        state.load_schedule(schedule_id)
        return _schedule_response(state)

    @app.delete("/api/schedules/<int:schedule_id>")
    def api_delete_schedule(schedule_id: int):
        _state().delete_schedule(schedule_id)
        return jsonify({"status": "ok"})

    @app.get("/api/schedules/shared")
    def api_shared_schedules():
        shared = _state().shared_with_me()
        return jsonify({"schedules": [item.to_dict() for item in shared]})

    # Sharing -------------------------------------------------------------------------

    @app.get("/api/schedule/shares")
    def api_shares():
        shares = _state().list_shares()
        return jsonify({"shares": [share.to_dict() for share in shares]})

    @app.post("/api/schedule/shares")
    def api_share_schedule():
        payload = _payload()
        share = _state().share_schedule(payload.get("email"), payload.get("permission_level") or "view")
        return jsonify({"share": share.to_dict()}), 201

    @app.delete("/api/shares/<int:share_id>")
    def api_remove_share(share_id: int):
        _state().remove_share(share_id)
        return jsonify({"status": "ok"})

    # History -------------------------------------------------------------------------

    @app.get("/api/history")
    def api_history():
        state = _state()
        workout_id = request.args.get("workout_id")
        entries = state.history_for(workout_id) if workout_id else state.history
        return jsonify({"history": describe_history(entries, state.catalog)})

    @app.post("/api/history")
    def api_add_history():
        payload = _payload()
        entry = _state().add_history_entry(
            workout_id=payload.get("workout_id"),
            date_text=payload.get("date"),
            actual_times=payload.get("actual_times"),
            target_times=payload.get("target_times"),
            notes=payload.get("notes"),
            weather=payload.get("weather"),
            location=payload.get("location"),
            rating=payload.get("rating", 5),
        )
        return jsonify({"entry": entry.to_dict()}), 201

    @app.put("/api/history/<entry_id>")
    def api_edit_history(entry_id: str):
        entry = _state().edit_history_entry(entry_id, _payload())
        return jsonify({"entry": entry.to_dict()})

    # Export --------------------------------------------------------------------------

    @app.get("/api/export/markdown")
    def api_export_markdown():
        state = _state()
        if request.args.get("kind") == "history":
            document, filename = state.history_markdown(), "workout-history.md"
        else:
            document, filename = state.schedule_markdown(), state.config.export_filename
        return Response(
            document,
            mimetype="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
