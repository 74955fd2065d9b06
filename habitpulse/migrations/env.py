"""Alembic environment.

Under ``flask db ...`` the running app supplies the engine. Plain ``alembic -c
habitpulse/migrations/alembic.ini ...`` builds an app from ``habitpulse_env``.
"""

from __future__ import annotations

import logging
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from flask import current_app, has_app_context

config = context.config

if config.config_file_name and Path(config.config_file_name).exists():
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")


def _load_app():
    if has_app_context():
        return current_app._get_current_object(), None
    from habitpulse import create_app

    app = create_app(config.get_main_option("habitpulse_env", "development"))
    ctx = app.app_context()
    ctx.push()
    return app, ctx


app, _pushed = _load_app()
db = app.extensions["migrate"].db
target_metadata = db.metadata


def _skip_empty_revision(context_, revision, directives):
    # Autogenerate against an unchanged schema should not write a file.
    if getattr(config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []
        logger.info("No schema changes detected")


def run_migrations_offline() -> None:
    context.configure(
        url=app.config["SQLALCHEMY_DATABASE_URI"],
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with db.engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
            process_revision_directives=_skip_empty_revision,
        )
        with context.begin_transaction():
            context.run_migrations()


try:
    if context.is_offline_mode():
        run_migrations_offline()
    else:
        run_migrations_online()
finally:
    if _pushed is not None:
        _pushed.pop()
