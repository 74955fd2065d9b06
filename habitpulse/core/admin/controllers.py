"""Admin statistics endpoint."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from habitpulse.core.admin.services import platform_stats
from habitpulse.core.auth.models import ROLE_ADMIN
from habitpulse.core.utils.decorators import require_roles

admin_bp = Blueprint("admin_api", __name__)


@admin_bp.get("/stats")
@jwt_required()
@require_roles({ROLE_ADMIN})
def get_stats():
    raw = request.args.get("as_of")
    try:
        as_of = date.fromisoformat(raw) if raw else None
    except ValueError:
        return jsonify({"ok": False, "error": "invalid_day"}), 400
    return jsonify({"ok": True, "stats": platform_stats(as_of)})
