"""Reusable decorators for controllers."""

from __future__ import annotations

from functools import wraps
from typing import Callable, Iterable, Type, TypeVar

from flask import current_app, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from pydantic import BaseModel, ValidationError

from habitpulse.core.auth.csrf import validate_csrf_token
from habitpulse.core.auth.models import ROLE_ADMIN

F = TypeVar("F", bound=Callable)


def current_user_id() -> int:
    """Identity of the bearer token as the integer user id."""
    return int(get_jwt_identity())


def require_roles(required_roles: Iterable[str]):
    """401 without a valid token, 403 unless the roles claim covers ``required_roles``.

    Admin satisfies any requirement.
    """
    needed = frozenset(required_roles)

    def decorator(fn: F) -> F:
        @wraps(fn)
        def wrapper(*args, **kwargs):  # type: ignore[misc]
            try:
                verify_jwt_in_request()
            except JWTExtendedException:
                return jsonify({"ok": False, "error": "unauthorized"}), 401
            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])
            missing = set() if ROLE_ADMIN in roles else needed - roles
            if missing:
                return jsonify({"ok": False, "error": "forbidden", "missing_roles": sorted(missing)}), 403
            return fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def csrf_protected(fn: F) -> F:
    """Validate the X-CSRF-Token header against the JWT identity. Use under ``jwt_required``."""

    @wraps(fn)
    def wrapper(*args, **kwargs):  # type: ignore[misc]
        if not current_app.config.get("WTF_CSRF_ENABLED", True):
            return fn(*args, **kwargs)
        token = request.headers.get("X-CSRF-Token")
        if not validate_csrf_token(token or "", get_jwt_identity()):
            return jsonify({"ok": False, "error": "csrf_failed"}), 403
        return fn(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def validated_body(schema: Type[BaseModel]):
    """Parse the JSON body into ``schema`` and pass it as ``data``; 400 on failure."""

    def decorator(fn: F) -> F:
        @wraps(fn)
        def wrapper(*args, **kwargs):  # type: ignore[misc]
            payload = request.get_json(silent=True) or {}
            try:
                data = schema.model_validate(payload)
            except ValidationError as exc:
                details = [
                    {k: (str(v) if k == "ctx" else v) for k, v in err.items()}
                    for err in exc.errors()
                ]
                return jsonify({"ok": False, "error": "validation_error", "details": details}), 400
            return fn(*args, data=data, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
