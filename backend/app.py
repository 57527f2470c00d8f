import logging
import os
from flask import Flask, jsonify, request, current_app
from flask_cors import CORS

from achievement import build_weeks, trailing_window, achievement_level
from dates import key_to_date, parse_date_param, today_key, format_key
from db import create_db_engine, create_session_factory
from errors import ConsistencyRisk, NotFound, ValidationFailure
from hierarchy import build_hierarchy
from repository import TodoRepository
from schema import ensure_schema

logger = logging.getLogger(__name__)


def create_app(db_path: str | None = None, engine=None):
    app = Flask(__name__)
    CORS(app)

    # Ensure DB tables exist and are on the current shape
    engine = engine or create_db_engine(db_path)
    ensure_schema(engine)
    app.extensions["todo_engine"] = engine
    app.extensions["todo_repo"] = TodoRepository(create_session_factory(engine))
    logger.info("todo store ready at %s", engine.url)

    register_error_handlers(app)
    register_routes(app)
    return app


# ---------- Helpers ----------
def repo() -> TodoRepository:
    return current_app.extensions["todo_repo"]


def date_arg(raw, default=None):
    if raw is None or raw == "":
        if default is None:
            raise ValidationFailure("date is required")
        return default
    try:
        return parse_date_param(raw)
    except ValueError as exc:
        raise ValidationFailure(str(exc)) from None


def json_body(kind=dict):
    """Parsed JSON request body; anything unparseable or of the wrong shape is a 400."""
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, kind):
        expected = "a JSON list" if kind is list else "a JSON object"
        raise ValidationFailure(f"request body must be {expected}")
    return data


def optional_id(raw):
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationFailure(f"invalid id: {raw!r}") from None


def register_error_handlers(app):
    @app.errorhandler(NotFound)
    def not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(ValidationFailure)
    def invalid(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(ConsistencyRisk)
    def conflict(exc):
        return jsonify({"error": str(exc)}), 409


# ---------- API ----------
def register_routes(app):
    @app.get("/api/todos")
    def list_todos():
        day = date_arg(request.args.get("date"), default=today_key())
        nodes = build_hierarchy(repo().list_by_date(day))
        return jsonify({
            "date": day,
            "label": format_key(day),
            "todos": [node.to_dict() for node in nodes],
        })

    @app.post("/api/todos")
    def create_todo():
        data = json_body()
        todo = repo().create(
            data.get("title", ""),
            date_arg(data.get("date"), default=today_key()),
            optional_id(data.get("parent_id")),
        )
        return jsonify(todo.to_dict()), 201

    @app.get("/api/todos/<int:todo_id>")
    def get_todo(todo_id: int):
        return jsonify(repo().get(todo_id).to_dict())

    @app.put("/api/todos/<int:todo_id>")
    def update_todo(todo_id: int):
        data = json_body()
        return jsonify(repo().update(todo_id, data.get("title", "")).to_dict())

    @app.post("/api/todos/<int:todo_id>/status")
    def update_status(todo_id: int):
        data = json_body()
        return jsonify(repo().update_status(todo_id, data.get("status")).to_dict())

    @app.delete("/api/todos/<int:todo_id>")
    def delete_todo(todo_id: int):
        return jsonify({"ok": True, "deleted": repo().soft_delete(todo_id)})

    @app.post("/api/todos/reorder")
    def reorder_todos():
        todos = repo().reorder(json_body(list))
        return jsonify([t.to_dict() for t in todos])

    @app.put("/api/todos/<int:todo_id>/parent")
    def update_parent(todo_id: int):
        data = json_body()
        todo = repo().update_parent(todo_id, optional_id(data.get("parent_id")))
        return jsonify(todo.to_dict())

    @app.put("/api/todos/<int:todo_id>/date")
    def update_date(todo_id: int):
        data = json_body()
        return jsonify(repo().update_date(todo_id, date_arg(data.get("date"))).to_dict())

    @app.get("/api/stats/yearly")
    def yearly_stats():
        end = key_to_date(date_arg(request.args.get("end"), default=today_key()))
        start_key, end_key = trailing_window(end)
        stats = repo().get_yearly_stats(start_key, end_key)
        return jsonify({
            "start": start_key,
            "end": end_key,
            "days": [
                dict(s.to_dict(), level=achievement_level(s.total_count, s.completed_count))
                for s in stats
            ],
            "weeks": build_weeks(stats, end),
        })


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("TODO_LOG_LEVEL", "INFO").upper())
    port = int(os.getenv("PORT", 8000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
