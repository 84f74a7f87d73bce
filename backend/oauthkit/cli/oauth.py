"""Flask CLI commands for inspecting and managing stored OAuth credentials."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import click
from flask.cli import with_appcontext

from oauthkit.core.extensions import db
from oauthkit.core.oauth import get_consumer

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    """Raise logging verbosity for the consumer modules when requested."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger("oauthkit.services").setLevel(level)
    LOGGER.setLevel(level)


def _format_epoch(value: int | None) -> str:
    if not value:
        return "never"
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat(timespec="seconds")


@click.group("oauth")
@click.option("--verbose", is_flag=True, help="Enable verbose logging for token operations.")
@click.pass_context
def oauth_cli(ctx: click.Context, verbose: bool) -> None:
    """Manage delegated credentials of configured services."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@oauth_cli.command("init-db")
@with_appcontext
def init_db_command() -> None:
    """Create the token cache table used by the ``model`` backend."""
    db.create_all()
    click.echo("Token cache table ready.")


@oauth_cli.command("services")
@with_appcontext
def services_command() -> None:
    """List the configured services and the current environment."""
    consumer = get_consumer()
    click.echo(f"Environment: {consumer.environment}")
    names = consumer.registry.names()
    if not names:
        click.echo("  (no services)")
        return
    for name in names:
        click.echo(f"  {name}")


@oauth_cli.command("status")
@click.argument("service")
@with_appcontext
def status_command(service: str) -> None:
    """Show whether SERVICE has usable credentials and when they expire."""
    consumer = get_consumer()
    expires = consumer.expires(service)
    if not expires:
        raise click.ClickException(f"{service}: {expires.error}")
    access = consumer.has_access(service)
    state = "authorized" if access else f"unusable ({access.error})"
    click.echo(f"{service}: {state}, expires {_format_epoch(expires.value)}")


@oauth_cli.command("refresh")
@click.argument("service")
@with_appcontext
def refresh_command(service: str) -> None:
    """Renew the credentials of SERVICE now."""
    consumer = get_consumer()
    result = consumer.refresh(service)
    if not result:
        raise click.ClickException(f"Refresh failed: {result.error}")
    click.echo(f"{service}: refreshed, expires {_format_epoch(consumer.expires(service).value)}")


@oauth_cli.command("release")
@click.argument("service")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@with_appcontext
def release_command(service: str, yes: bool) -> None:
    """Give up the stored credentials of SERVICE."""
    if not yes:
        click.confirm(f"Release the credentials of {service}?", abort=True)
    result = get_consumer().release(service)
    if not result:
        raise click.ClickException(f"Release failed: {result.error}")
    click.echo(f"{service}: released")
