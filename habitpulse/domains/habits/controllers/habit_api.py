"""Habits JSON API controllers (thin, schema-validated)."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from habitpulse.core.auth.models import ROLE_HABITS_WRITE
from habitpulse.core.errors import DomainError, Rejected
from habitpulse.core.utils.dates import today_in
from habitpulse.core.utils.decorators import csrf_protected, current_user_id, require_roles, validated_body
from habitpulse.core.utils.responses import error_response
from habitpulse.domains.habits import services as habit_services
from habitpulse.domains.habits.schemas.habit_schemas import (
    CompletionCreate,
    HabitCreate,
    HabitSummaryResponse,
    serialize_state,
)
from habitpulse.extensions import limiter

habit_api_bp = Blueprint("habit_api", __name__)


def _completion_limit() -> str:
    return current_app.config.get("COMPLETION_RATE_LIMIT", "120/minute")


def _day_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    return date.fromisoformat(raw)


@habit_api_bp.get("")
@jwt_required()
def list_habits():
    items = habit_services.list_habits(current_user_id())
    payload = [
        HabitSummaryResponse(
            id=item["habit"].id,
            name=item["habit"].name,
            description=item["habit"].description,
            kind=item["habit"].kind,
            target_count=item["habit"].target_count,
            schedule_days=item["habit"].schedule,
            timezone=item["habit"].timezone,
            is_deleted=item["habit"].is_deleted,
            current_streak=item["current_streak"],
            today=serialize_state(item["today"]),
        ).model_dump(mode="json")
        for item in items
    ]
    return jsonify({"ok": True, "habits": payload})


@habit_api_bp.post("")
@jwt_required()
@require_roles({ROLE_HABITS_WRITE})
@csrf_protected
@validated_body(HabitCreate)
def create_habit(data: HabitCreate):
    try:
        habit = habit_services.create_habit(current_user_id(), **data.model_dump())
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "habit_id": habit.id}), 201


@habit_api_bp.delete("/<int:habit_id>")
@jwt_required()
@require_roles({ROLE_HABITS_WRITE})
@csrf_protected
def delete_habit(habit_id: int):
    if not habit_services.delete_habit(current_user_id(), habit_id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True})


@habit_api_bp.post("/<int:habit_id>/completions")
@jwt_required()
@require_roles({ROLE_HABITS_WRITE})
@csrf_protected
@limiter.limit(_completion_limit)
@validated_body(CompletionCreate)
def record_completion(habit_id: int, data: CompletionCreate):
    result = habit_services.record_completion(
        current_user_id(), habit_id, data.delta, data.client_timestamp
    )
    if isinstance(result, Rejected):
        return error_response(result.error)
    return jsonify({"ok": True, "state": serialize_state(result)}), 201


@habit_api_bp.get("/<int:habit_id>/state")
@jwt_required()
def habit_state(habit_id: int):
    try:
        day = _day_arg("day")
    except ValueError:
        return jsonify({"ok": False, "error": "invalid_day"}), 400
    try:
        state = habit_services.get_habit_state(current_user_id(), habit_id, day)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "state": serialize_state(state)})


@habit_api_bp.get("/<int:habit_id>/stats")
@jwt_required()
def habit_stats(habit_id: int):
    try:
        stats = habit_services.get_habit_stats(current_user_id(), habit_id, _day_arg("day"))
    except ValueError as exc:
        if isinstance(exc, DomainError):
            return error_response(exc)
        return jsonify({"ok": False, "error": "invalid_day"}), 400
    return jsonify({"ok": True, "stats": stats})


@habit_api_bp.get("/<int:habit_id>/history")
@jwt_required()
def habit_history(habit_id: int):
    try:
        end = _day_arg("end")
        start = _day_arg("start")
    except ValueError:
        return jsonify({"ok": False, "error": "invalid_day"}), 400
    try:
        habit = habit_services.get_habit(current_user_id(), habit_id)
        if not habit:
            return jsonify({"ok": False, "error": "not_found"}), 404
        end = end or today_in(habit.timezone)
        start = start or habit.creation_day
        states = habit_services.get_habit_history(current_user_id(), habit_id, start, end)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "history": [serialize_state(state) for state in states]})
