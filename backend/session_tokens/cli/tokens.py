"""Flask CLI commands for operator-driven token revocation."""

from __future__ import annotations

import logging

import click
from flask import current_app
from flask.cli import with_appcontext

from session_tokens.core.extensions import get_session_service
from session_tokens.services._shared.errors import StorageError

LOGGER = logging.getLogger(__name__)


@click.group("tokens")
def tokens_cli() -> None:
    """Refresh token administration commands."""


@tokens_cli.command("revoke-user")
@click.argument("user_id", type=click.IntRange(min=1))
@with_appcontext
def revoke_user(user_id: int) -> None:
    """Invalidate every refresh token of USER_ID (forces re-login on next refresh)."""
    service = get_session_service(current_app)
    try:
        count = service.revoke_all(user_id)
    except StorageError as exc:
        LOGGER.error(
            "cli.revoke_user_failed",
            extra={"event": "cli.revoke_user_failed", "user_id": user_id, "operation": exc.operation},
        )
        raise click.ClickException("Refresh token store unavailable; nothing was revoked.") from exc
    click.echo(f"Revoked {count} refresh token(s) for user {user_id}.")
