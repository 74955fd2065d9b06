"""Auth HTTP controllers (API only)."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from pydantic import ValidationError

from habitpulse.core.auth.auth_service import authenticate_user, issue_tokens, refresh_access_token
from habitpulse.core.auth.csrf import generate_csrf_token
from habitpulse.core.errors import DomainError
from habitpulse.core.users.schemas import LoginRequest, UserCreateRequest, serialize_user
from habitpulse.core.users.services import create_user
from habitpulse.extensions import limiter

auth_bp = Blueprint("auth_api", __name__)


def _jsonable_errors(exc: ValidationError) -> list[dict]:
    errors = exc.errors()
    for err in errors:
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
    return errors


@auth_bp.post("/register")
@limiter.limit("5/minute")
def register():
    payload = request.get_json(silent=True) or {}
    try:
        data = UserCreateRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "bad_request", "details": _jsonable_errors(exc)}), 400
    try:
        user = create_user(data)
    except DomainError as exc:
        status = 409 if exc.code == "email_already_exists" else 400
        return jsonify({"ok": False, "error": exc.code}), status
    return (
        jsonify(
            {
                "ok": True,
                "user": serialize_user(user).model_dump(),
                "csrf_token": generate_csrf_token(user.id),
                **issue_tokens(user),
            }
        ),
        201,
    )


@auth_bp.post("/login")
@limiter.limit("10/minute")
def login():
    payload = request.get_json(silent=True) or {}
    try:
        data = LoginRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "bad_request", "details": _jsonable_errors(exc)}), 400
    user = authenticate_user(data.email, data.password)
    if not user:
        return jsonify({"ok": False, "error": "invalid_credentials"}), 401
    return jsonify({"ok": True, "csrf_token": generate_csrf_token(user.id), **issue_tokens(user)})


@auth_bp.get("/csrf")
@jwt_required()
def csrf_token():
    return jsonify({"ok": True, "csrf_token": generate_csrf_token(get_jwt_identity())})


@auth_bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    token = refresh_access_token(get_jwt_identity())
    if token is None:
        return jsonify({"ok": False, "error": "invalid_credentials"}), 401
    return jsonify({"ok": True, "access_token": token})
