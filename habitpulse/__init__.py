"""HabitPulse application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from habitpulse.config import config_by_name
from habitpulse.core.events.event_bus import event_bus
from habitpulse.extensions import init_extensions


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the HabitPulse Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)

    # Relative sqlite paths resolve against the project root, not the cwd.
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///") and not db_uri.startswith("sqlite:///:memory:"):
        db_path = Path(db_uri.replace("sqlite:///", "", 1))
        if not db_path.is_absolute():
            db_path = project_root / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    init_extensions(app)
    _register_blueprints(app)
    _register_error_handlers(app)
    _register_engine(app)

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    from habitpulse.scripts.commands import register_commands

    register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from habitpulse.core.admin.controllers import admin_bp
    from habitpulse.core.auth.controllers import auth_bp
    from habitpulse.domains.challenges.controllers.challenge_api import challenge_api_bp
    from habitpulse.domains.habits.controllers.habit_api import habit_api_bp
    from habitpulse.domains.social.controllers.social_api import social_api_bp

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(habit_api_bp, url_prefix="/api/habits")
    app.register_blueprint(challenge_api_bp, url_prefix="/api/challenges")
    app.register_blueprint(social_api_bp, url_prefix="/api/social")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")


def _register_error_handlers(app: Flask) -> None:
    """JSON error responses."""
    from werkzeug.exceptions import HTTPException

    from habitpulse.core.errors import DomainError
    from habitpulse.core.utils.responses import error_response

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(DomainError)
    def _domain_error(exc: DomainError):
        return error_response(exc)

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500


def _register_engine(app: Flask) -> None:
    """Attach the progress engine, its collaborators and bus subscribers."""
    from habitpulse.core.coaching.subscribers import register_subscriptions
    from habitpulse.domains.habits.ledger import completion_ledger, habit_projector
    from habitpulse.domains.social.collaborators import EXTENSION_KEY, Collaborators
    from habitpulse.domains.social.leaderboard import leaderboard_ranker

    app.extensions["event_bus"] = event_bus
    app.extensions["completion_ledger"] = completion_ledger
    app.extensions["habit_projector"] = habit_projector
    app.extensions["leaderboard_ranker"] = leaderboard_ranker
    app.extensions.setdefault(EXTENSION_KEY, Collaborators())
    register_subscriptions(event_bus)
