"""CSRF tokens bound to the authenticated identity.

Clients authenticate with bearer tokens, so the CSRF token is derived from the
JWT identity and the app secret instead of a cookie session.
"""

from __future__ import annotations

import hashlib
import hmac

from flask import current_app


def _digest(identity: str) -> str:
    key = (current_app.config.get("SECRET_KEY") or "").encode("utf-8")
    return hmac.new(key, f"csrf:{identity}".encode("utf-8"), hashlib.sha256).hexdigest()


def generate_csrf_token(identity) -> str:
    return _digest(str(identity))


def validate_csrf_token(token: str, identity) -> bool:
    if not token or identity is None:
        return False
    return hmac.compare_digest(token, _digest(str(identity)))
