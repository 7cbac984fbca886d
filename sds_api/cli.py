from __future__ import annotations

from typing import List

import typer

from .db.session import SessionLocal
from .services.auth import AuthService, purge_expired_reset_tokens
from .services.dynamics365 import get_dynamics_service
from .services.roles import ROLE_VIEWER
from .services.search import create_index
from .services.sessions import SessionClaims, get_session_signer

app = typer.Typer(help="SDS Document Manager administrative CLI")


@app.command()
def create_search_index() -> None:
    """Create the Azure Cognitive Search index if it does not exist."""
    if create_index():
        typer.echo("Search index created")
    else:
        typer.echo("Search index already exists")


@app.command()
def purge_reset_tokens() -> None:
    """Delete expired password reset tokens."""
    db = SessionLocal()
    try:
        removed = purge_expired_reset_tokens(db)
        typer.echo(f"Removed {removed} expired reset token(s)")
    finally:
        db.close()


@app.command()
def send_reset_link(email: str = typer.Argument(..., help="Contact email")) -> None:
    """Send a password reset link to a contact."""
    db = SessionLocal()
    try:
        message = AuthService(db, get_dynamics_service()).forgot_password(email)
        typer.echo(message)
    finally:
        db.close()


@app.command()
def mint_session(
    email: str = typer.Argument(..., help="Contact email"),
    role: List[str] = typer.Option([], "--role", "-r", help="Roles for an offline token (skips Dynamics 365)"),
) -> None:
    """Print a bearer token for manual API testing."""
    if role:
        claims = SessionClaims(id=f"local-{email}", email=email, roles=list(role))
        typer.echo(get_session_signer().issue(claims))
        return

    dynamics = get_dynamics_service()
    if not dynamics.is_configured():
        typer.echo(f"Dynamics 365 is not configured; pass --role (e.g. --role {ROLE_VIEWER})", err=True)
        raise typer.Exit(code=1)

    contact = dynamics.get_contact_by_email(email)
    if not contact:
        typer.echo(f"No contact found for {email}", err=True)
        raise typer.Exit(code=1)

    db = SessionLocal()
    try:
        result = AuthService(db, dynamics).issue_for_contact(contact, email)
    finally:
        db.close()
    typer.echo(f"Roles: {', '.join(result.claims.roles)}", err=True)
    typer.echo(result.token)


if __name__ == "__main__":
    app()
