"""JSON error responses for domain errors."""

from __future__ import annotations

from flask import jsonify

from habitpulse.core.errors import DomainError, InvariantViolation, StaleSnapshot


def status_for(error: DomainError) -> int:
    if error.code == "not_found":
        return 404
    if error.code == "duplicate":
        return 409
    if isinstance(error, (InvariantViolation, StaleSnapshot)):
        return 409
    return 400


def error_response(error: DomainError):
    body = {"ok": False, "error": error.code}
    if error.detail:
        body["detail"] = error.detail
    return jsonify(body), status_for(error)
