"""CLI commands for RSVP links and email providers."""

import asyncio
from uuid import UUID

import typer

from guestlink.config.logging import setup_logging
from guestlink.config.settings import settings
from guestlink.delivery.config_source import SettingsProviderConfigSource
from guestlink.delivery.factory import build_registry
from guestlink.guests.dtos import GuestNotFoundError
from guestlink.guests.repository.read_models import SqlGuestDirectory
from guestlink.helpers.time import utcnow
from guestlink.tokens.dtos import TokenGenerationError, TokenPersistenceError
from guestlink.tokens.features.issue_token.write_model import TokenIssuer, guest_locks
from guestlink.tokens.features.validate_token.validator import TokenValidator, url_for
from guestlink.tokens.repository.store import SqlTokenStore

app = typer.Typer(help="CLI commands for RSVP links and email providers")


def _validator() -> TokenValidator:
    return TokenValidator(
        store=SqlTokenStore(),
        guest_directory=SqlGuestDirectory(),
        single_use=settings.token_single_use,
    )


def _event_registry(event_id: str | None):
    if not event_id:
        return build_registry(settings.provider_config())
    source = SettingsProviderConfigSource(settings)
    return build_registry(asyncio.run(source.get_provider_config(UUID(event_id))))


def _issuer() -> TokenIssuer:
    return TokenIssuer(
        store=SqlTokenStore(),
        guest_directory=SqlGuestDirectory(),
        base_url=settings.frontend_url,
        locks=guest_locks,
    )


@app.callback()
def main():
    setup_logging()


@app.command()
def cleanup_expired():
    """Deactivate every RSVP link past its expiry. Meant for a cron job."""
    count = asyncio.run(_validator().cleanup_expired())
    typer.secho(f"Deactivated {count} expired RSVP links", fg=typer.colors.GREEN)


@app.command()
def issue_token(
    guest_id: str = typer.Argument(
        ...,
        help="Guest UUID",
    ),
    ttl_days: int = typer.Option(
        settings.token_ttl_days,
        "--ttl-days",
        "-t",
        help="Days until the link expires",
    ),
):
    """Issue a new RSVP link for a guest. Any previous link stops working."""
    try:
        token = asyncio.run(_issuer().issue(UUID(guest_id), ttl_days))
    except (ValueError, GuestNotFoundError) as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)
    except (TokenGenerationError, TokenPersistenceError) as e:
        typer.secho(f"Could not issue RSVP link: {e}", fg=typer.colors.RED)
        raise typer.Exit(1)

    typer.secho("RSVP link issued!", fg=typer.colors.GREEN)
    typer.secho(f"  Guest ID: {guest_id}", fg=typer.colors.BLUE)
    typer.secho(f"  RSVP URL: {url_for(token, settings.frontend_url)}", fg=typer.colors.CYAN)
    typer.secho(f"  Valid for: {ttl_days} days", fg=typer.colors.BLUE)


@app.command()
def revoke_token(
    token: str = typer.Argument(
        ...,
        help="Token value from the RSVP link",
    ),
):
    """Deactivate an RSVP link."""
    if not asyncio.run(_issuer().revoke(token)):
        typer.secho("Token not found", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.secho("RSVP link revoked", fg=typer.colors.GREEN)


@app.command()
def token_stats(
    event_id: str = typer.Option(
        None,
        "--event-id",
        "-e",
        help="Only count tokens of this event's guests",
    ),
):
    """Show how many RSVP links are active, used and expired."""
    stats = asyncio.run(
        SqlTokenStore().stats(utcnow(), event_id=UUID(event_id) if event_id else None)
    )

    typer.secho("RSVP links", fg=typer.colors.GREEN)
    typer.secho(f"  Total: {stats.total}", fg=typer.colors.BLUE)
    typer.secho(f"  Active: {stats.active}", fg=typer.colors.BLUE)
    typer.secho(f"  Used: {stats.used}", fg=typer.colors.BLUE)
    typer.secho(f"  Expired: {stats.expired}", fg=typer.colors.YELLOW)
    typer.secho(f"  Unused: {stats.unused}", fg=typer.colors.BLUE)
    typer.secho(f"  Usage rate: {stats.usage_rate:.1f}%", fg=typer.colors.CYAN)


@app.command()
def list_providers(
    event_id: str = typer.Option(None, "--event-id", "-e", help="Use this event's credentials"),
):
    """List the configured email providers in fallback order."""
    registry = _event_registry(event_id)
    for entry in registry.describe():
        if entry["configured"]:
            typer.secho(f"  [x] {entry['name']}", fg=typer.colors.GREEN)
        else:
            typer.secho(f"  [ ] {entry['name']}", fg=typer.colors.YELLOW)

    configured = registry.list_configured()
    if not configured:
        typer.secho("No email providers configured", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.echo()
    typer.secho(f"Fallback order: {' -> '.join(configured)}", fg=typer.colors.CYAN)


@app.command()
def verify_providers(
    event_id: str = typer.Option(None, "--event-id", "-e", help="Use this event's credentials"),
):
    """Check credentials and connectivity of every configured provider."""
    registry = _event_registry(event_id)
    if not registry:
        typer.secho("No email providers configured", fg=typer.colors.RED)
        raise typer.Exit(1)

    results = asyncio.run(registry.verify_all())
    for health in results:
        if health.healthy:
            typer.secho(f"  {health.name}: OK", fg=typer.colors.GREEN)
        else:
            typer.secho(f"  {health.name}: {health.error}", fg=typer.colors.RED)

    if not all(health.healthy for health in results):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
