"""Social JSON API: leaderboards, privacy settings and friends."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from habitpulse.core.errors import DomainError
from habitpulse.core.users.services import get_user
from habitpulse.core.utils.dates import today_in
from habitpulse.core.utils.decorators import csrf_protected, current_user_id, validated_body
from habitpulse.core.utils.responses import error_response
from habitpulse.domains.social import services as social_services
from habitpulse.domains.social.leaderboard import Scope, leaderboard_ranker
from habitpulse.domains.social.schemas.social_schemas import LeaderboardQuery, PrivacyUpdate

social_api_bp = Blueprint("social_api", __name__)


@social_api_bp.get("/leaderboard")
@jwt_required()
def leaderboard():
    try:
        query = LeaderboardQuery.model_validate(request.args.to_dict())
    except ValidationError as exc:
        details = [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
        return jsonify({"ok": False, "error": "validation_error", "details": details}), 400
    viewer_id = current_user_id()
    viewer = get_user(viewer_id)
    tz_name = (viewer.timezone if viewer else None) or current_app.config.get("DEFAULT_TIMEZONE", "UTC")
    as_of = query.as_of or today_in(tz_name)
    limit = query.limit or current_app.config.get("LEADERBOARD_PAGE_SIZE", 50)
    try:
        scope = Scope.parse(query.scope, query.ref_id)
        page = leaderboard_ranker.page(scope, viewer_id, as_of, query.period, limit, query.offset)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "as_of": as_of.isoformat(), "period": query.period, **page.to_dict()})


@social_api_bp.get("/privacy")
@jwt_required()
def get_privacy():
    return jsonify({"ok": True, "privacy": social_services.get_privacy(current_user_id())})


@social_api_bp.put("/privacy")
@jwt_required()
@csrf_protected
@validated_body(PrivacyUpdate)
def set_privacy(data: PrivacyUpdate):
    try:
        social_services.set_privacy(current_user_id(), data.scope_class, data.visibility)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True})


@social_api_bp.get("/friends")
@jwt_required()
def list_friends():
    user_id = current_user_id()
    return jsonify(
        {
            "ok": True,
            "following": sorted(social_services.friend_edges(user_id)),
            "mutual": sorted(social_services.mutual_friends(user_id)),
        }
    )


@social_api_bp.post("/friends/<int:friend_id>")
@jwt_required()
@csrf_protected
def add_friend(friend_id: int):
    try:
        created = social_services.add_friend(current_user_id(), friend_id)
    except DomainError as exc:
        return error_response(exc)
    return jsonify({"ok": True, "created": created}), 201 if created else 200


@social_api_bp.delete("/friends/<int:friend_id>")
@jwt_required()
@csrf_protected
def remove_friend(friend_id: int):
    if not social_services.remove_friend(current_user_id(), friend_id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True})
