"""Flask CLI commands.

Usage:
    flask dispatch-outbox               # single pass over ready messages
    flask dispatch-outbox --loop        # run until interrupted
    flask create-admin --email admin@example.com --password secret123
    flask create-organization "Acme"
    flask assign-organization user@example.com 1
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from habitpulse.core.auth.models import ROLE_ADMIN
from habitpulse.core.auth.password import hash_password
from habitpulse.core.errors import DomainError
from habitpulse.core.users.models import User
from habitpulse.core.users.services import assign_organization, create_organization, grant_role
from habitpulse.extensions import db
from habitpulse.platform.worker.config import DispatchConfig
from habitpulse.platform.worker.dispatcher import dispatch_ready, run_dispatcher


@click.command("dispatch-outbox")
@click.option("--loop", is_flag=True, help="Keep polling until interrupted")
@click.option("--batch-size", type=int, default=None, help="Override OUTBOX_BATCH_SIZE")
@with_appcontext
def dispatch_outbox_command(loop: bool, batch_size: int | None):
    """Publish ready outbox messages to the in-process bus."""
    config = DispatchConfig.from_app_config(current_app.config)
    if batch_size:
        config = config.with_batch_size(batch_size)
    if loop:
        run_dispatcher(config)
        return
    processed = dispatch_ready(config)
    click.echo(f"Processed {processed} outbox message(s)")


@click.command("create-admin")
@click.option("--email", required=True, help="Admin email")
@click.option("--password", required=True, help="Admin password")
@click.option("--full-name", default="Admin", help="Admin display name")
@with_appcontext
def create_admin_command(email: str, password: str, full_name: str):
    """Create (or promote) a user with the admin role."""
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(email=email, full_name=full_name, password_hash=hash_password(password))
        db.session.add(user)
        db.session.flush()
    grant_role(user, ROLE_ADMIN)
    db.session.commit()
    click.echo(f"Admin ready: {user.email} roles={user.role_codes}")


@click.command("create-organization")
@click.argument("name")
@with_appcontext
def create_organization_command(name: str):
    try:
        org = create_organization(name)
    except DomainError as exc:
        raise click.ClickException(exc.code) from exc
    click.echo(f"Organization {org.id}: {org.name}")


@click.command("assign-organization")
@click.argument("email")
@click.argument("organization_id", type=int, required=False)
@with_appcontext
def assign_organization_command(email: str, organization_id: int | None):
    """Move a user into an organization; omit the id to detach them."""
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None:
        raise click.ClickException("not_found")
    try:
        assign_organization(user.id, organization_id)
    except DomainError as exc:
        raise click.ClickException(exc.code) from exc
    click.echo(f"{user.email} organization={user.organization_id}")


def register_commands(app) -> None:
    app.cli.add_command(dispatch_outbox_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(create_organization_command)
    app.cli.add_command(assign_organization_command)
