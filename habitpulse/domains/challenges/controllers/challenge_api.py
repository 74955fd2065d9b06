"""Challenges JSON API controllers."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from habitpulse.core.errors import DomainError
from habitpulse.core.utils.decorators import csrf_protected, current_user_id, validated_body
from habitpulse.core.utils.responses import error_response
from habitpulse.domains.challenges import services as challenge_services
from habitpulse.domains.challenges.schemas.challenge_schemas import (
    ChallengeCreate,
    ChallengeHabitCreate,
    ChallengeListQuery,
    MembershipUpdate,
    serialize_challenge,
    serialize_membership,
)

challenge_api_bp = Blueprint("challenge_api", __name__)


@challenge_api_bp.post("")
@jwt_required()
@csrf_protected
@validated_body(ChallengeCreate)
def create_challenge(data: ChallengeCreate):
    try:
        challenge = challenge_services.create_challenge(current_user_id(), **data.model_dump())
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "challenge_id": challenge.id}), 201


@challenge_api_bp.get("")
@jwt_required()
def list_challenges():
    try:
        query = ChallengeListQuery.model_validate(request.args.to_dict())
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    try:
        challenges, total = challenge_services.list_challenges(
            current_user_id(),
            as_of=query.as_of,
            status=query.status,
            organization_id=query.organization_id,
            mine=query.mine,
            search=query.q,
            limit=query.limit,
            offset=query.offset,
        )
    except DomainError as exc:
        return error_response(exc)
    items = [
        serialize_challenge(c, len(challenge_services.challenge_membership(c.id)), len(c.habit_links))
        for c in challenges
    ]
    return jsonify({"ok": True, "challenges": items, "total": total})


@challenge_api_bp.get("/<int:challenge_id>")
@jwt_required()
def challenge_detail(challenge_id: int):
    detail = challenge_services.challenge_detail(challenge_id)
    if not detail:
        return jsonify({"ok": False, "error": "not_found"}), 404
    challenge = serialize_challenge(detail["challenge"], detail["participant_count"], detail["habit_count"])
    return jsonify({"ok": True, "challenge": challenge})


@challenge_api_bp.post("/<int:challenge_id>/join")
@jwt_required()
@csrf_protected
def join_challenge(challenge_id: int):
    try:
        membership = challenge_services.join_challenge(current_user_id(), challenge_id)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "membership": serialize_membership(membership)})


@challenge_api_bp.post("/<int:challenge_id>/leave")
@jwt_required()
@csrf_protected
def leave_challenge(challenge_id: int):
    try:
        left = challenge_services.leave_challenge(current_user_id(), challenge_id)
    except DomainError as exc:
        return error_response(exc)
    if not left:
        return jsonify({"ok": False, "error": "not_member"}), 409
    return jsonify({"ok": True})


@challenge_api_bp.post("/<int:challenge_id>/habits")
@jwt_required()
@csrf_protected
@validated_body(ChallengeHabitCreate)
def tag_habit(challenge_id: int, data: ChallengeHabitCreate):
    try:
        challenge_services.tag_habit(current_user_id(), challenge_id, data.habit_id, data.weight)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True}), 201


@challenge_api_bp.patch("/<int:challenge_id>/membership")
@jwt_required()
@csrf_protected
@validated_body(MembershipUpdate)
def update_membership(challenge_id: int, data: MembershipUpdate):
    try:
        membership = challenge_services.set_leaderboard_opt_out(
            current_user_id(), challenge_id, data.opt_out_of_leaderboard
        )
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "membership": serialize_membership(membership)})


@challenge_api_bp.get("/<int:challenge_id>/progress")
@jwt_required()
def challenge_progress(challenge_id: int):
    raw = request.args.get("as_of")
    try:
        as_of = date.fromisoformat(raw) if raw else None
    except ValueError:
        return jsonify({"ok": False, "error": "invalid_day"}), 400
    try:
        progress = challenge_services.get_progress(challenge_id, current_user_id(), as_of)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "progress": progress.to_dict()})
